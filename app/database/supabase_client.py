from supabase import create_client, Client
from app.config import settings

# Tables the marketplace cannot run without; checked by the readiness endpoint.
CORE_TABLES = (
    "companies",
    "profiles",
    "company_capabilities",
    "products",
    "trades",
    "rfqs",
    "quotes",
    "trade_events",
    "escrows",
    "shipments",
)


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Used by webhooks, the trade kernel and schedulers."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or cls.get_client()

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_service_supabase() -> Client:
    return SupabaseClient.get_service_client()


def find_missing_tables(supabase: Client, tables=CORE_TABLES) -> list:
    """Return the core tables that cannot be queried (missing or not exposed through PostgREST)."""
    missing = []
    for table in tables:
        try:
            supabase.table(table).select("id").limit(1).execute()
        except Exception:
            missing.append(table)
    return missing


def like_contains(term: str) -> str:
    """ilike pattern matching term anywhere, with %, _ and backslash taken literally."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
