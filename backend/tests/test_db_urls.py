from wacrm.shared.db.base import sync_database_url


def test_asyncpg_url_is_switched_to_psycopg2():
    assert sync_database_url("postgresql+asyncpg://u:p@db:5432/crm") == "postgresql+psycopg2://u:p@db:5432/crm"


def test_plain_postgres_urls_get_psycopg2_driver():
    assert sync_database_url("postgresql://u@db/crm") == "postgresql+psycopg2://u@db/crm"
    assert sync_database_url("postgres://u@db/crm") == "postgresql+psycopg2://u@db/crm"


def test_url_with_explicit_sync_driver_is_unchanged():
    url = "postgresql+psycopg2://u@db/crm?sslmode=require"
    assert sync_database_url(url) == url
