from inkwell.client.api import ApiError, BlogApiClient
from inkwell.client.logger import ClientLogger
from inkwell.client.store import OperationState, PostStore

__all__ = ["ApiError", "BlogApiClient", "ClientLogger", "OperationState", "PostStore"]
