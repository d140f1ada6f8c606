from django.urls import path
from . import views

app_name = 'wallets'

urlpatterns = [
    path('balance/', views.wallet_balance, name='wallet-balance'),
    path('transactions/', views.transaction_list, name='transactions'),
    path('topup/', views.topup, name='topup'),
    path('withdraw/', views.withdraw, name='withdraw'),
    path('webhook/', views.payment_webhook, name='payment-webhook'),
]
