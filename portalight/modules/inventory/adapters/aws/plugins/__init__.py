from .storage import S3BucketsPlugin
from .messaging import SqsQueuesPlugin, SnsTopicsPlugin
from .database import RdsInstancesPlugin
from .compute import LambdaFunctionsPlugin

__all__ = [
    # Storage
    "S3BucketsPlugin",
    # Messaging
    "SqsQueuesPlugin",
    "SnsTopicsPlugin",
    # Database
    "RdsInstancesPlugin",
    # Compute
    "LambdaFunctionsPlugin",
]
