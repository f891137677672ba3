"""
Billing package - handles subscriptions, entitlements, usage and payments.

This package integrates with:
- AbacatePay: Hosted checkout and payment webhooks

Plan limits and monthly usage are enforced locally via LimitsService and UsageService.
"""
