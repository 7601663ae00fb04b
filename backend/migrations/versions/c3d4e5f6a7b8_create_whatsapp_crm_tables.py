"""Create WhatsApp CRM tables

Revision ID: c3d4e5f6a7b8
Revises:
Create Date: 2026-10-19

This migration adds:
- companies, whatsapp_configs: tenants and their business numbers
- forms, products: catalog used by auto-replies
- leads: with the partial unique index for ad-originated leads
- whatsapp_messages: inbound/outbound log, unique provider message_id
- flow_responses: native flow submissions, unique message_id
- auto_reply_rules: keyword rules per company
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'c3d4e5f6a7b8'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Tenants
    op.create_table(
        'companies',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('website', sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'whatsapp_configs',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('phone_number_id', sa.Text(), nullable=False, unique=True),
        sa.Column('business_account_id', sa.Text(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('catalog_id', sa.Text(), nullable=True),
        sa.Column('webhook_verify_token', sa.Text(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('idx_whatsapp_configs_company', 'whatsapp_configs', ['company_id'])

    # Catalog
    op.create_table(
        'forms',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('fields', postgresql.JSONB(), nullable=False, server_default='[]'),
        *_timestamps(),
    )
    op.create_index('idx_forms_company', 'forms', ['company_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.Text(), nullable=False, server_default='USD'),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('retailer_id', sa.Text(), nullable=True),
        sa.Column('linked_form_id', sa.BigInteger(),
                  sa.ForeignKey('forms.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('flow_id', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        'uq_products_company_retailer', 'products', ['company_id', 'retailer_id'],
        unique=True, postgresql_where=sa.text("retailer_id IS NOT NULL")
    )
    op.create_index('idx_products_company_flow', 'products', ['company_id', 'flow_id'])

    # Leads
    op.create_table(
        'leads',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('phone', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone_number_id', sa.Text(), nullable=True),
        sa.Column('stage', sa.Text(), nullable=False, server_default='new'),
        sa.Column('stage_order', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.Text(), nullable=False, server_default='new'),
        sa.Column('source', sa.Text(), nullable=False, server_default='manual'),
        sa.Column('priority', sa.Text(), nullable=False, server_default='medium'),
        sa.Column('value', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('assigned_to', sa.BigInteger(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('comment_history', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('last_message', sa.Text(), nullable=True),
        sa.Column('last_interaction', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('ad_referral', postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_leads_company_phone', 'leads', ['company_id', 'phone'])
    op.create_index('idx_leads_stage', 'leads', ['stage', 'stage_order'])
    op.create_index('idx_leads_assigned', 'leads', ['assigned_to', 'stage'])
    op.create_index('idx_leads_phone_number_id', 'leads', ['phone_number_id'])
    # At most one ad-originated lead per (company, phone)
    op.create_index(
        'uq_leads_company_phone_ad', 'leads', ['company_id', 'phone'],
        unique=True, postgresql_where=sa.text("source = 'whatsapp_ad'")
    )

    # Messages
    op.create_table(
        'whatsapp_messages',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('message_id', sa.Text(), nullable=False, unique=True),
        sa.Column('phone_number_id', sa.Text(), nullable=False),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=True),
        sa.Column('direction', sa.Text(), nullable=False, server_default='incoming'),
        sa.Column('from_number', sa.Text(), nullable=False),
        sa.Column('from_name', sa.Text(), nullable=True),
        sa.Column('to_number', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=False, server_default='text'),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('media_id', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='received'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True, server_default='{}'),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
    )
    op.create_index('idx_whatsapp_messages_company_pnid', 'whatsapp_messages', ['company_id', 'phone_number_id'])
    op.create_index('idx_whatsapp_messages_from', 'whatsapp_messages', ['from_number'])
    op.create_index('idx_whatsapp_messages_to', 'whatsapp_messages', ['to_number'])
    op.create_index('idx_whatsapp_messages_timestamp', 'whatsapp_messages', ['timestamp'])

    # Flow submissions
    op.create_table(
        'flow_responses',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('phone_number_id', sa.Text(), nullable=False),
        sa.Column('flow_id', sa.Text(), nullable=False),
        sa.Column('flow_token', sa.Text(), nullable=True),
        sa.Column('from_number', sa.Text(), nullable=False),
        sa.Column('from_name', sa.Text(), nullable=True),
        sa.Column('response_data', postgresql.JSONB(), nullable=False),
        sa.Column('parsed_fields', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('status', sa.Text(), nullable=False, server_default='completed'),
        sa.Column('product_id', sa.BigInteger(),
                  sa.ForeignKey('products.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('lead_id', sa.BigInteger(),
                  sa.ForeignKey('leads.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('message_id', sa.Text(), nullable=True, unique=True),
        *_timestamps(),
    )
    op.create_index('idx_flow_responses_company_created', 'flow_responses', ['company_id', 'created_at'])
    op.create_index('idx_flow_responses_company_flow', 'flow_responses', ['company_id', 'flow_id'])
    op.create_index('idx_flow_responses_from', 'flow_responses', ['from_number'])

    # Keyword rules
    op.create_table(
        'auto_reply_rules',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('company_id', sa.BigInteger(),
                  sa.ForeignKey('companies.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('keyword', sa.Text(), nullable=False),
        sa.Column('match_type', sa.Text(), nullable=False, server_default='contains'),
        sa.Column('case_sensitive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('response_type', sa.Text(), nullable=False, server_default='text'),
        sa.Column('response_text', sa.Text(), nullable=True),
        sa.Column('product_id', sa.BigInteger(),
                  sa.ForeignKey('products.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('flow_id', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('idx_auto_reply_rules_company_position', 'auto_reply_rules', ['company_id', 'position'])


def downgrade() -> None:
    op.drop_index('idx_auto_reply_rules_company_position', table_name='auto_reply_rules')
    op.drop_table('auto_reply_rules')

    op.drop_index('idx_flow_responses_from', table_name='flow_responses')
    op.drop_index('idx_flow_responses_company_flow', table_name='flow_responses')
    op.drop_index('idx_flow_responses_company_created', table_name='flow_responses')
    op.drop_table('flow_responses')

    op.drop_index('idx_whatsapp_messages_timestamp', table_name='whatsapp_messages')
    op.drop_index('idx_whatsapp_messages_to', table_name='whatsapp_messages')
    op.drop_index('idx_whatsapp_messages_from', table_name='whatsapp_messages')
    op.drop_index('idx_whatsapp_messages_company_pnid', table_name='whatsapp_messages')
    op.drop_table('whatsapp_messages')

    op.drop_index('uq_leads_company_phone_ad', table_name='leads')
    op.drop_index('idx_leads_phone_number_id', table_name='leads')
    op.drop_index('idx_leads_assigned', table_name='leads')
    op.drop_index('idx_leads_stage', table_name='leads')
    op.drop_index('idx_leads_company_phone', table_name='leads')
    op.drop_table('leads')

    op.drop_index('idx_products_company_flow', table_name='products')
    op.drop_index('uq_products_company_retailer', table_name='products')
    op.drop_table('products')

    op.drop_index('idx_forms_company', table_name='forms')
    op.drop_table('forms')

    op.drop_index('idx_whatsapp_configs_company', table_name='whatsapp_configs')
    op.drop_table('whatsapp_configs')

    op.drop_table('companies')
