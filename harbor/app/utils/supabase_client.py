"""
Supabase client utility.
Provides the shared client used for token verification and audio storage.
"""
import os
import logging
from typing import Optional

from supabase import create_client, Client

logger = logging.getLogger(__name__)


class SupabaseManager:
    """Singleton class for managing the Supabase client instance."""

    _instance = None
    _client: Optional[Client] = None

    def __new__(cls):
        if cls._instance is None:
            instance = super(SupabaseManager, cls).__new__(cls)
            instance._initialized = False
            instance._client = None
            cls._instance = instance
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._initialize_client()
            self._initialized = True

    def _initialize_client(self):
        """Initialize the Supabase client from SUPABASE_URL / SUPABASE_KEY."""
        supabase_url = os.getenv('SUPABASE_URL')
        # Server-side code prefers the service role key so storage writes bypass RLS
        supabase_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY') or os.getenv('SUPABASE_KEY')

        if not supabase_url or not supabase_key:
            logger.warning("Supabase URL or key not set. Supabase functionality will be limited.")
            return

        try:
            logger.info(f"Initializing Supabase client with URL: {supabase_url[:10]}...")
            self._client = create_client(supabase_url, supabase_key)
            logger.info("Supabase client initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Supabase client: {str(e)}")
            self._client = None

    @property
    def client(self) -> Optional[Client]:
        """Get the Supabase client instance.

        Returns:
            Optional[Client]: The Supabase client, or None if not configured.
        """
        if not self._client:
            self._initialize_client()
        return self._client

    def storage_bucket(self, bucket: str):
        """Get a storage bucket reference for uploads and downloads.

        Args:
            bucket: Name of the storage bucket.
        """
        if not self.client:
            raise ValueError("Supabase client not initialized")
        return self.client.storage.from_(bucket)


# Initialize the singleton instance
supabase = SupabaseManager()
