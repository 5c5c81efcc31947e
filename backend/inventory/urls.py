from django.urls import path
from .views import (
    WarehouseListView, LocationListView,
    ProductListView, ProductDetailView, product_availability, product_summary,
    DocumentListView, DocumentDetailView, document_add_line, document_remove_line,
    document_pdf, document_transition,
    LedgerEntryListView, ledger_export, create_adjustment,
    reconciliation_report, reconciliation_pdf,
)

urlpatterns = [
    # Warehouse structure
    path('warehouses/', WarehouseListView.as_view(), name='warehouse-list'),
    path('locations/', LocationListView.as_view(), name='location-list'),

    # Products
    path('products/', ProductListView.as_view(), name='product-list'),
    path('products/summary/', product_summary, name='product-summary'),
    path('products/<int:pk>/', ProductDetailView.as_view(), name='product-detail'),
    path('products/<int:pk>/availability/', product_availability, name='product-availability'),

    # Movement documents
    path('documents/', DocumentListView.as_view(), name='document-list'),
    path('documents/<int:pk>/', DocumentDetailView.as_view(), name='document-detail'),
    path('documents/<int:pk>/lines/', document_add_line, name='document-add-line'),
    path('documents/<int:pk>/lines/<int:line_id>/', document_remove_line, name='document-remove-line'),
    path('documents/<int:pk>/pdf/', document_pdf, name='document-pdf'),
    # Must stay last: matches any action name
    path('documents/<int:pk>/<str:action>/', document_transition, name='document-transition'),

    # Ledger, adjustments & reconciliation
    path('ledger/', LedgerEntryListView.as_view(), name='ledger-list'),
    path('ledger/export/<str:file_format>/', ledger_export, name='ledger-export'),
    path('adjustments/', create_adjustment, name='adjustment-create'),
    path('reports/reconciliation/', reconciliation_report, name='reconciliation-report'),
    path('reports/reconciliation/pdf/', reconciliation_pdf, name='reconciliation-pdf'),
]
