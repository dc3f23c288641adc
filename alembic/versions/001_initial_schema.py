"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('profile_image_url', sa.String(length=500), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('zip_code', sa.String(length=20), nullable=True),
        sa.Column('country', sa.String(length=2), nullable=True),
        sa.Column('role', sa.Enum('VISITOR', 'BUYER', 'SELLER', 'ADMIN', name='userrole'), nullable=False),
        sa.Column('account_status', sa.Enum('ACTIVE', 'BANNED', name='accountstatus'), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=True),
        sa.Column('phone_verified', sa.Boolean(), nullable=True),
        sa.Column('identity_verified', sa.Boolean(), nullable=True),
        sa.Column('address_verified', sa.Boolean(), nullable=True),
        sa.Column('verification_level', sa.Integer(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
        sa.Column(
            'subscription_status',
            sa.Enum(
                'NONE', 'INCOMPLETE', 'INCOMPLETE_EXPIRED', 'TRIALING', 'ACTIVE',
                'PAST_DUE', 'UNPAID', 'CANCELED',
                name='subscriptionstate'
            ),
            nullable=False
        ),
        sa.Column('subscription_setup_intent_id', sa.String(length=255), nullable=True),
        sa.Column('subscription_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_stripe_customer_id', 'users', ['stripe_customer_id'], unique=False)
    op.create_index('ix_users_stripe_subscription_id', 'users', ['stripe_subscription_id'], unique=False)

    # Web sessions backing the session cookie
    op.create_table(
        'sessions',
        sa.Column('sid', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('auth_state', sa.String(length=128), nullable=True),
        sa.Column('expire', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('sid')
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'], unique=False)
    op.create_index('ix_sessions_expire', 'sessions', ['expire'], unique=False)

    # Sellers table
    op.create_table(
        'sellers',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('shop_name', sa.String(length=255), nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('banner', sa.String(length=500), nullable=True),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('policies', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('business_type', sa.String(length=64), nullable=True),
        sa.Column('tax_id_hash', sa.String(length=64), nullable=True),
        sa.Column('business_license', sa.String(length=255), nullable=True),
        sa.Column('business_address', sa.String(length=500), nullable=True),
        sa.Column('business_phone', sa.String(length=32), nullable=True),
        sa.Column('business_email', sa.String(length=255), nullable=True),
        sa.Column(
            'verification_status',
            sa.Enum('UNVERIFIED', 'PENDING', 'APPROVED', 'REJECTED', name='sellerverificationstatus'),
            nullable=False
        ),
        sa.Column('business_verified', sa.Boolean(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by', sa.String(length=64), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('risk_score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sellers_user_id', 'sellers', ['user_id'], unique=True)
    op.create_index('ix_sellers_shop_name', 'sellers', ['shop_name'], unique=False)

    # Categories table
    op.create_table(
        'categories',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(length=100), nullable=True),
        sa.Column('parent_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    # Listings table
    op.create_table(
        'listings',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=300), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('mpn', sa.String(length=100), nullable=True),
        sa.Column('condition', sa.String(length=50), nullable=True),
        sa.Column('provenance', sa.Text(), nullable=True),
        sa.Column('species_or_material', sa.String(length=255), nullable=True),
        sa.Column('category_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('tags', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('state', sa.Enum('DRAFT', 'PUBLISHED', 'SUSPENDED', name='listingstate'), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('views', sa.Integer(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_listings_seller_id', 'listings', ['seller_id'], unique=False)
    op.create_index('ix_listings_slug', 'listings', ['slug'], unique=True)
    op.create_index('ix_listings_seller_state', 'listings', ['seller_id', 'state'], unique=False)
    op.create_index('ix_listings_created_at', 'listings', ['created_at'], unique=False)

    op.create_table(
        'listing_images',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('listing_id', sa.String(length=64), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=False),
        sa.Column('alt', sa.String(length=255), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_listing_images_listing_id', 'listing_images', ['listing_id'], unique=False)

    # Carts
    op.create_table(
        'carts',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('session_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_carts_user_id', 'carts', ['user_id'], unique=False)
    op.create_index('ix_carts_session_id', 'carts', ['session_id'], unique=False)

    op.create_table(
        'cart_items',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('cart_id', sa.String(length=64), nullable=False),
        sa.Column('listing_id', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cart_id', 'listing_id', name='uq_cart_items_cart_listing')
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'], unique=False)

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('discount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('platform_fee', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('promotion_code', sa.String(length=64), nullable=True),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'PAID', 'SHIPPED', 'FULFILLED', 'REFUNDED', 'DISPUTED', name='orderstatus'),
            nullable=False
        ),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('shipping_address', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('carrier', sa.String(length=50), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'], unique=False)
    op.create_index('ix_orders_seller_id', 'orders', ['seller_id'], unique=False)
    op.create_index('ix_orders_stripe_payment_intent_id', 'orders', ['stripe_payment_intent_id'], unique=False)
    op.create_index('ix_orders_seller_status', 'orders', ['seller_id', 'status'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('listing_id', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)
    op.create_index('ix_order_items_listing_id', 'order_items', ['listing_id'], unique=False)

    op.create_table(
        'disputes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('opened_by', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('OPEN', 'RESOLVED_BUYER', 'RESOLVED_SELLER', 'CLOSED', name='disputestatus'),
            nullable=False
        ),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['opened_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_disputes_order_id', 'disputes', ['order_id'], unique=False)

    # Reviews
    op.create_table(
        'reviews',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('listing_id', sa.String(length=64), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('images', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('seller_response', sa.Text(), nullable=True),
        sa.Column('seller_response_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'listing_id', 'buyer_id', name='uq_reviews_order_listing_buyer'),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_reviews_rating_range')
    )
    op.create_index('ix_reviews_order_id', 'reviews', ['order_id'], unique=False)
    op.create_index('ix_reviews_buyer_id', 'reviews', ['buyer_id'], unique=False)
    op.create_index('ix_reviews_seller_id', 'reviews', ['seller_id'], unique=False)
    op.create_index('ix_reviews_listing_id', 'reviews', ['listing_id'], unique=False)

    # Favorites and follows
    op.create_table(
        'favorites',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('listing_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'listing_id', name='uq_favorites_user_listing')
    )
    op.create_index('ix_favorites_user_id', 'favorites', ['user_id'], unique=False)
    op.create_index('ix_favorites_listing_id', 'favorites', ['listing_id'], unique=False)

    op.create_table(
        'shop_follows',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'seller_id', name='uq_shop_follows_user_seller')
    )
    op.create_index('ix_shop_follows_user_id', 'shop_follows', ['user_id'], unique=False)
    op.create_index('ix_shop_follows_seller_id', 'shop_follows', ['seller_id'], unique=False)

    # Messaging
    op.create_table(
        'message_threads',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('listing_id', sa.String(length=64), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id']),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_message_threads_buyer_id', 'message_threads', ['buyer_id'], unique=False)
    op.create_index('ix_message_threads_seller_id', 'message_threads', ['seller_id'], unique=False)

    op.create_table(
        'messages',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('thread_id', sa.String(length=64), nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['thread_id'], ['message_threads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_thread_id', 'messages', ['thread_id'], unique=False)

    # Moderation flags
    op.create_table(
        'flags',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('reporter_id', sa.String(length=64), nullable=False),
        sa.Column(
            'target_type',
            sa.Enum('LISTING', 'USER', 'REVIEW', 'MESSAGE', name='flagtargettype'),
            nullable=False
        ),
        sa.Column('target_id', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'RESOLVED', 'DISMISSED', name='flagstatus'), nullable=False),
        sa.Column('moderator_notes', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['reporter_id'], ['users.id']),
        sa.ForeignKeyConstraint(['resolved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_flags_target_id', 'flags', ['target_id'], unique=False)

    # Promotions and payouts
    op.create_table(
        'promotions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('discount_type', sa.Enum('PERCENTAGE', 'FIXED', name='discounttype'), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('seller_id', 'code', name='uq_promotions_seller_code'),
        sa.CheckConstraint('max_uses IS NULL OR current_uses <= max_uses', name='ck_promotions_uses_within_cap')
    )
    op.create_index('ix_promotions_seller_id', 'promotions', ['seller_id'], unique=False)

    op.create_table(
        'payouts',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'PAID', 'FAILED', name='payoutstatus'), nullable=False),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('orders_included', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payouts_seller_id', 'payouts', ['seller_id'], unique=False)

    # Verification
    op.create_table(
        'verification_requests',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column(
            'type',
            sa.Enum('EMAIL', 'PHONE', 'IDENTITY', 'ADDRESS', 'BUSINESS', 'TAX_ID', name='verificationtype'),
            nullable=False
        ),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'VERIFIED', 'FAILED', 'EXPIRED', 'REJECTED', name='verificationstatus'),
            nullable=False
        ),
        sa.Column('verification_code', sa.String(length=16), nullable=True),
        sa.Column('code_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('documents', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_verification_requests_user_id', 'verification_requests', ['user_id'], unique=False)
    op.create_index(
        'ix_verification_requests_user_type_status',
        'verification_requests',
        ['user_id', 'type', 'status'],
        unique=False
    )

    op.create_table(
        'identity_verification_sessions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('provider_session_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=True),
        sa.Column('url', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_identity_verification_sessions_user_id', 'identity_verification_sessions', ['user_id'], unique=False
    )
    op.create_index(
        'ix_identity_verification_sessions_provider_session_id',
        'identity_verification_sessions',
        ['provider_session_id'],
        unique=False
    )

    op.create_table(
        'seller_review_queue',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('queue_type', sa.String(length=32), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('risk_factors', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('submitted_documents', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'COMPLETED', name='queuestatus'), nullable=False),
        sa.Column('decision', sa.Enum('APPROVED', 'REJECTED', name='queuedecision'), nullable=True),
        sa.Column('decision_reason', sa.Text(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('assigned_to', sa.String(length=64), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_seller_review_queue_seller_id', 'seller_review_queue', ['seller_id'], unique=False)
    op.create_index(
        'ix_seller_review_queue_status_priority', 'seller_review_queue', ['status', 'priority'], unique=False
    )

    op.create_table(
        'verification_audit_log',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('action_by', sa.String(length=64), nullable=True),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_verification_audit_log_user_id', 'verification_audit_log', ['user_id'], unique=False)

    # Processed payment webhook events
    op.create_table(
        'stripe_events',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('stripe_events')
    op.drop_table('verification_audit_log')
    op.drop_table('seller_review_queue')
    op.drop_table('identity_verification_sessions')
    op.drop_table('verification_requests')
    op.drop_table('payouts')
    op.drop_table('promotions')
    op.drop_table('flags')
    op.drop_table('messages')
    op.drop_table('message_threads')
    op.drop_table('shop_follows')
    op.drop_table('favorites')
    op.drop_table('reviews')
    op.drop_table('disputes')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_table('listing_images')
    op.drop_table('listings')
    op.drop_table('categories')
    op.drop_table('sellers')
    op.drop_table('sessions')
    op.drop_table('users')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS queuedecision')
    op.execute('DROP TYPE IF EXISTS queuestatus')
    op.execute('DROP TYPE IF EXISTS verificationstatus')
    op.execute('DROP TYPE IF EXISTS verificationtype')
    op.execute('DROP TYPE IF EXISTS payoutstatus')
    op.execute('DROP TYPE IF EXISTS discounttype')
    op.execute('DROP TYPE IF EXISTS flagstatus')
    op.execute('DROP TYPE IF EXISTS flagtargettype')
    op.execute('DROP TYPE IF EXISTS disputestatus')
    op.execute('DROP TYPE IF EXISTS orderstatus')
    op.execute('DROP TYPE IF EXISTS listingstate')
    op.execute('DROP TYPE IF EXISTS sellerverificationstatus')
    op.execute('DROP TYPE IF EXISTS subscriptionstate')
    op.execute('DROP TYPE IF EXISTS accountstatus')
    op.execute('DROP TYPE IF EXISTS userrole')
