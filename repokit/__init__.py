"""repokit: repository/query abstraction over Supabase with an in-memory double."""

__version__ = "1.0.0"
