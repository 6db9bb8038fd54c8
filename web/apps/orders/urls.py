from django.urls import path

from .views import ConfirmOrderView, OrdersCollectionView, ProcessOrderView, RetrieveOrderView

app_name = "orders"

urlpatterns = [
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("<int:order_id>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<int:order_id>/process", ProcessOrderView.as_view(), name="orders-process"),
    path("<int:order_id>/confirm", ConfirmOrderView.as_view(), name="orders-confirm"),
]
