from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('table_number', sa.Integer(), nullable=True),
        sa.Column('order_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('total_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_received', sa.Float(), nullable=True),
        sa.Column('change_given', sa.Float(), nullable=True),
        sa.Column('order_date', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('accounted', sa.Boolean(), nullable=True, server_default=sa.text('0')),
        sa.Column('takeaway_seq', sa.Integer(), nullable=True),
        sa.Column('parent_order_id', sa.Integer(), nullable=True),
        sa.Column('total_overridden', sa.Boolean(), nullable=False, server_default=sa.text('0')),
    )
    op.create_index('ix_orders_order_date', 'orders', ['order_date'])
    op.create_index('ix_orders_parent_order_id', 'orders', ['parent_order_id'])
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_table(
        'daily_closings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('closing_date', sa.String(length=10), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_daily_closings_closing_date', 'daily_closings', ['closing_date'])
    op.create_table(
        'takeaway_counters',
        sa.Column('business_date', sa.String(length=10), primary_key=True),
        sa.Column('epoch', sa.Integer(), primary_key=True),
        sa.Column('last_seq', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'stock_codes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stock_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('brand', sa.String(length=120), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='adet'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
    )
    op.create_table(
        'stock_purchases',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stock_code_id', sa.Integer(), nullable=False),
        sa.Column('package_count', sa.Float(), nullable=False, server_default='1'),
        sa.Column('package_content', sa.Float(), nullable=False, server_default='1'),
        sa.Column('total_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('unit_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('per_item_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('purchase_date', sa.String(length=10), nullable=False),
        sa.ForeignKeyConstraint(['stock_code_id'], ['stock_codes.id']),
    )
    op.create_index('ix_stock_purchases_stock_code_id', 'stock_purchases', ['stock_code_id'])
    op.create_table(
        'product_cost_recipes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('product_name', sa.String(length=200), nullable=False, unique=True),
        sa.Column('notes', sa.String(length=1000), nullable=False, server_default=''),
        sa.Column('last_updated', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'product_cost_ingredients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('recipe_id', sa.Integer(), nullable=False),
        sa.Column('stock_code_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit_cost_override', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['recipe_id'], ['product_cost_recipes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stock_code_id'], ['stock_codes.id']),
    )
    op.create_index('ix_product_cost_ingredients_recipe_id', 'product_cost_ingredients', ['recipe_id'])


def downgrade() -> None:
    op.drop_table('product_cost_ingredients')
    op.drop_table('product_cost_recipes')
    op.drop_table('stock_purchases')
    op.drop_table('stock_codes')
    op.drop_table('takeaway_counters')
    op.drop_table('daily_closings')
    op.drop_table('order_items')
    op.drop_table('orders')
