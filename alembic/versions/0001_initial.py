"""initial schema: fundamentals, earnings, logos, news

Revision ID: 0001
Revises:
Create Date: 2025-10-27 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "fundamentals",
        sa.Column("ticker", sa.String(10), primary_key=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("exchange", sa.String(20), nullable=True),
        sa.Column("sector", sa.String(255), nullable=True),
        sa.Column("industry", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("website", sa.String(255), nullable=True),
        sa.Column("currency", sa.String(5), nullable=True),
        sa.Column("employees", sa.Integer(), nullable=True),
        sa.Column("market_cap", sa.Float(), nullable=True),
        sa.Column("shares_outstanding", sa.Float(), nullable=True),
        sa.Column("current_price", sa.Float(), nullable=True),
        sa.Column("week_52_high", sa.Float(), nullable=True),
        sa.Column("week_52_low", sa.Float(), nullable=True),
        sa.Column("average_volume", sa.Float(), nullable=True),
        sa.Column("price_to_earnings", sa.Float(), nullable=True),
        sa.Column("price_to_book", sa.Float(), nullable=True),
        sa.Column("price_to_sales", sa.Float(), nullable=True),
        sa.Column("price_to_cash_flow", sa.Float(), nullable=True),
        sa.Column("price_to_free_cash_flow", sa.Float(), nullable=True),
        sa.Column("enterprise_value", sa.Float(), nullable=True),
        sa.Column("ev_to_sales", sa.Float(), nullable=True),
        sa.Column("ev_to_ebitda", sa.Float(), nullable=True),
        sa.Column("earnings_per_share", sa.Float(), nullable=True),
        sa.Column("return_on_assets", sa.Float(), nullable=True),
        sa.Column("return_on_equity", sa.Float(), nullable=True),
        sa.Column("profit_margin", sa.Float(), nullable=True),
        sa.Column("operating_margin", sa.Float(), nullable=True),
        sa.Column("gross_margin", sa.Float(), nullable=True),
        sa.Column("current_ratio", sa.Float(), nullable=True),
        sa.Column("quick_ratio", sa.Float(), nullable=True),
        sa.Column("cash_ratio", sa.Float(), nullable=True),
        sa.Column("debt_to_equity", sa.Float(), nullable=True),
        sa.Column("dividend_yield", sa.Float(), nullable=True),
        sa.Column("revenue", sa.Float(), nullable=True),
        sa.Column("net_income", sa.Float(), nullable=True),
        sa.Column("operating_income", sa.Float(), nullable=True),
        sa.Column("gross_profit", sa.Float(), nullable=True),
        sa.Column("ebitda", sa.Float(), nullable=True),
        sa.Column("total_assets", sa.Float(), nullable=True),
        sa.Column("current_assets", sa.Float(), nullable=True),
        sa.Column("total_liabilities", sa.Float(), nullable=True),
        sa.Column("current_liabilities", sa.Float(), nullable=True),
        sa.Column("total_equity", sa.Float(), nullable=True),
        sa.Column("cash", sa.Float(), nullable=True),
        sa.Column("long_term_debt", sa.Float(), nullable=True),
        sa.Column("operating_cash_flow", sa.Float(), nullable=True),
        sa.Column("investing_cash_flow", sa.Float(), nullable=True),
        sa.Column("financing_cash_flow", sa.Float(), nullable=True),
        sa.Column("capex", sa.Float(), nullable=True),
        sa.Column("free_cash_flow", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("market_cap_updated_at", sa.DateTime(), nullable=True),
        sa.Column("week_52_updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "earnings",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("ticker", sa.String(10), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(20), nullable=True),
        sa.Column("date_status", sa.String(20), nullable=True),
        sa.Column("importance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("currency", sa.String(5), nullable=True),
        sa.Column("period", sa.String(10), nullable=True),
        sa.Column("period_year", sa.Integer(), nullable=True),
        sa.Column("eps_actual", sa.Float(), nullable=True),
        sa.Column("eps_estimate", sa.Float(), nullable=True),
        sa.Column("eps_prior", sa.Float(), nullable=True),
        sa.Column("eps_surprise", sa.Float(), nullable=True),
        sa.Column("eps_surprise_percent", sa.Float(), nullable=True),
        sa.Column("revenue_actual", sa.Float(), nullable=True),
        sa.Column("revenue_estimate", sa.Float(), nullable=True),
        sa.Column("revenue_prior", sa.Float(), nullable=True),
        sa.Column("revenue_surprise", sa.Float(), nullable=True),
        sa.Column("revenue_surprise_percent", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_ticker_date", "earnings", ["ticker", "date"])
    op.create_index("idx_date_importance", "earnings", ["date", "importance"])

    op.create_table(
        "logos",
        sa.Column("ticker", sa.String(10), primary_key=True),
        sa.Column("icon_url", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("exchange", sa.String(20), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "news",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("ticker", sa.String(10), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("author", sa.String(255), nullable=True),
        sa.Column("published_utc", sa.DateTime(), nullable=False),
        sa.Column("article_url", sa.Text(), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("publisher_name", sa.String(255), nullable=False),
        sa.Column("publisher_url", sa.Text(), nullable=True),
        sa.Column("publisher_logo", sa.Text(), nullable=True),
        sa.Column("tickers", sa.JSON(), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("sentiment", sa.String(20), nullable=True),
        sa.Column("sentiment_score", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_ticker_published", "news", ["ticker", "published_utc"])
    op.create_index("idx_published", "news", ["published_utc"])


def downgrade() -> None:
    op.drop_index("idx_published", table_name="news")
    op.drop_index("idx_ticker_published", table_name="news")
    op.drop_table("news")
    op.drop_table("logos")
    op.drop_index("idx_date_importance", table_name="earnings")
    op.drop_index("idx_ticker_date", table_name="earnings")
    op.drop_table("earnings")
    op.drop_table("fundamentals")
