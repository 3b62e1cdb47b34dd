from .processor_client import ProcessorClient
from .token_manager import TokenManager

__all__ = ["ProcessorClient", "TokenManager"]
