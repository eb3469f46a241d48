from django.urls import path

from . import views

urlpatterns = [
    path("checkout/check-stock/", views.check_stock, name="check_stock"),
    path("orders/<str:order_id>/confirm-payment/", views.confirm_payment, name="confirm_payment"),
    path("orders/<str:order_id>/refund/", views.refund, name="refund"),
    path("products/<str:product_id>/adjust-stock/", views.adjust_stock, name="adjust_stock"),
]
