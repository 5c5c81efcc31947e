"""
Constants used throughout the application.
"""

# Document Status Colors
# Using Tailwind CSS color palette for consistency
STATUS_COLORS = {
    'draft': '#6B7280',        # Gray-500 - Editable
    'waiting': '#F59E0B',      # Amber-500 - Waiting for stock check
    'ready': '#3B82F6',        # Blue-500 - Stock reserved / ready to process
    'in_transit': '#8B5CF6',   # Purple-500 - Reserved at source, moving
    'done': '#10B981',         # Green-500 - Complete, locked
    'completed': '#10B981',    # Green-500 - Complete, locked
    'canceled': '#EF4444',     # Red-500 - Cancelled, locked
}

# Stock Status Colors
STOCK_STATUS_COLORS = {
    'in_stock': '#10B981',
    'low_stock': '#F59E0B',
    'out_of_stock': '#EF4444',
}

# Reference direction codes per document kind (WH/OUT/0001)
REFERENCE_DIRECTIONS = {
    'receipt': 'IN',
    'delivery': 'OUT',
    'transfer': 'INT',
}
