"""
Supabase client configuration for the repository layer.

Provides a lazily created, process-wide Supabase client.
"""

from typing import Optional

from supabase import Client, create_client

from ..config import settings
from ..domain.exceptions import RepositoryConfigurationError
from ..logging_config import get_logger

logger = get_logger(__name__)

# Global Supabase client instance
_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get or create the Supabase client.

    Returns:
        Client authenticated with the service role key

    Raises:
        RepositoryConfigurationError: If SUPABASE_URL or SUPABASE_SERVICE_KEY is unset
    """
    global _supabase_client

    if not settings.supabase_configured:
        logger.warning(
            "Supabase credentials not fully configured",
            url_set=bool(settings.SUPABASE_URL),
            service_key_set=bool(settings.SUPABASE_SERVICE_KEY),
        )
        raise RepositoryConfigurationError(
            "Supabase not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY"
        )

    if _supabase_client is None:
        logger.info("Initializing Supabase client", url=settings.SUPABASE_URL)
        _supabase_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        logger.info("Supabase client initialized")

    return _supabase_client


def reset_supabase_client() -> None:
    """Drop the cached client so the next call rebuilds it from settings."""
    global _supabase_client
    _supabase_client = None
