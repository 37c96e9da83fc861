"""
Typed cloud credentials.
Decouples adapters from the SQLAlchemy secret model.
"""
from typing import Dict, Optional

from pydantic import BaseModel, SecretStr


class CloudCredentials(BaseModel):
    """Base class for all cloud credentials."""
    pass


class AWSCredentials(CloudCredentials):
    """Static IAM user keys stored in a cloud secret."""
    access_key_id: str
    secret_access_key: SecretStr
    session_token: Optional[SecretStr] = None
    region: Optional[str] = None
    account_id: Optional[str] = None
    access_type: str = "read"

    def to_boto_credentials(self) -> Dict[str, str]:
        creds = {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key.get_secret_value(),
        }
        if self.session_token is not None:
            creds["aws_session_token"] = self.session_token.get_secret_value()
        return creds

    @property
    def can_write(self) -> bool:
        return self.access_type == "write"
