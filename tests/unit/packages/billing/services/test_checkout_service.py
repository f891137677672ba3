"""
Unit tests for CheckoutService.

The payment provider and notifier are mocked; everything else runs against
the test database. Replayed confirmations run on the file-backed database so
every caller gets its own connection.
"""

import asyncio

import pytest
from datetime import timedelta

from common.core.config import settings
from common.core.constants import Environment
from common.core.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    PaymentProviderError,
    UntrustedRedirect,
    ValidationError,
)
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.checkout import PaymentEvidence
from packages.billing.models.domain.enums import (
    BillingCycle,
    CheckoutStatus,
    ExpiryReason,
    PaymentSource,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import SubscriptionUpdateModel
from packages.billing.providers.payment.models import ProviderCheckout
from packages.billing.repositories.checkout_repository import CheckoutSessionRepository
from packages.billing.repositories.invoice_repository import InvoiceRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.entitlement_service import EntitlementService
from packages.organizations.models.database.organization import (
    OrganizationEntity,
    OrganizationMemberEntity,
)


@pytest.fixture
def checkout_service(clock, mock_payment_provider, mock_notifier):
    return CheckoutService(
        entitlement_service=EntitlementService(clock=clock),
        payment_provider=mock_payment_provider,
        notifier=mock_notifier,
        clock=clock,
    )


def paid_evidence(amount_cents: int = 10000) -> PaymentEvidence:
    return PaymentEvidence(amount_cents=amount_cents, currency="BRL")


async def current_subscription(organization_id: int):
    return await SubscriptionRepository().get_by_organization_id(organization_id)


async def set_billing(subscription, **fields):
    await SubscriptionRepository().update(
        subscription.id, SubscriptionUpdateModel(**fields)
    )


@pytest.mark.asyncio
class TestCreateCheckout:
    async def test_create_checkout(
        self, checkout_service, sample_subscription, mock_payment_provider, clock
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        assert checkout.checkout_id.startswith("checkout_")
        assert checkout.status == CheckoutStatus.PENDING
        assert checkout.amount_cents == 10000
        assert checkout.currency == "BRL"
        assert checkout.provider_checkout_id == "bill_mock123"
        assert checkout.checkout_url == "https://pay.abacatepay.com/bill_mock123"
        assert checkout.expires_at == clock.now + timedelta(minutes=60)

        request = mock_payment_provider.create_checkout_session.await_args.args[0]
        assert request.checkout_id == checkout.checkout_id
        assert request.amount_cents == 10000

        assert request.customer_id == "cust_mock123"

        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.pending_plan_code == PlanCode.PRO_100
        assert subscription.status == SubscriptionStatus.FREE
        assert subscription.provider_customer_id == "cust_mock123"

        [invoice] = await InvoiceRepository().list_by_organization(
            sample_subscription.organization_id
        )
        assert invoice.provider_invoice_id == "bill_mock123"
        assert invoice.status == CheckoutStatus.PENDING
        assert invoice.checkout_session_id == checkout.id
        assert invoice.amount_cents == 10000

    async def test_annual_price(self, checkout_service, sample_subscription):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100, BillingCycle.ANNUAL
        )
        assert checkout.amount_cents == 96000

    async def test_free_plan_is_rejected(self, checkout_service, sample_subscription):
        with pytest.raises(ValidationError):
            await checkout_service.create_checkout(
                sample_subscription.organization_id, PlanCode.FREE
            )

    async def test_untrusted_url_fails_checkout(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        mock_payment_provider.create_checkout_session.return_value = ProviderCheckout(
            id="bill_evil", url="https://evil.example/pay"
        )

        with pytest.raises(UntrustedRedirect):
            await checkout_service.create_checkout(
                sample_subscription.organization_id, PlanCode.PRO_100
            )

        [checkout] = await checkout_service.list_checkouts(
            sample_subscription.organization_id
        )
        assert checkout.status == CheckoutStatus.FAILED
        assert checkout.checkout_url is None
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.pending_plan_code is None

    async def test_provider_error_fails_checkout(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        mock_payment_provider.create_checkout_session.side_effect = PaymentProviderError(
            "AbacatePay unavailable"
        )

        with pytest.raises(PaymentProviderError):
            await checkout_service.create_checkout(
                sample_subscription.organization_id, PlanCode.PRO_100
            )

        [checkout] = await checkout_service.list_checkouts(
            sample_subscription.organization_id
        )
        assert checkout.status == CheckoutStatus.FAILED
        assert checkout.failure_reason == "AbacatePay unavailable"

    async def test_stale_pending_checkouts_expire(
        self, checkout_service, sample_subscription, clock, mock_payment_provider
    ):
        mock_payment_provider.create_checkout_session.side_effect = [
            ProviderCheckout(id="bill_first", url="https://pay.abacatepay.com/bill_first"),
            ProviderCheckout(id="bill_second", url="https://pay.abacatepay.com/bill_second"),
        ]
        first = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )
        clock.now = clock.now + timedelta(minutes=61)

        await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.STARTER_50
        )

        stale = await CheckoutSessionRepository().get(first.id)
        assert stale.status == CheckoutStatus.EXPIRED

    async def test_same_plan_requires_explicit_flag(
        self, checkout_service, sample_subscription, clock
    ):
        # PAST_DUE keeps the paid plan in effect during grace
        await SubscriptionRepository().update(
            sample_subscription.id,
            SubscriptionUpdateModel(
                status=SubscriptionStatus.PAST_DUE,
                plan_code=PlanCode.PRO_100,
                current_period_ends_at=clock.now - timedelta(days=2),
                grace_ends_at=clock.now + timedelta(days=26),
            ),
        )

        with pytest.raises(InvalidStateTransition):
            await checkout_service.create_checkout(
                sample_subscription.organization_id, PlanCode.PRO_100
            )

        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100, allow_same_plan=True
        )
        assert checkout.allow_same_plan is True

        subscription = await checkout_service.confirm_payment(
            checkout.checkout_id, paid_evidence()
        )

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.plan_code == PlanCode.PRO_100
        assert subscription.grace_ends_at is None
        assert subscription.current_period_ends_at == clock.now + timedelta(days=30)
        stored = await current_subscription(sample_subscription.organization_id)
        assert stored.status == SubscriptionStatus.ACTIVE
        assert stored.grace_ends_at is None


@pytest.mark.asyncio
class TestBillingCustomer:
    async def test_customer_created_from_billing_profile(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        customer = mock_payment_provider.create_customer.await_args.args[0]
        assert customer.name == "Acme Ltda"
        assert customer.cellphone == "11987654321"
        assert customer.tax_id == "11222333000181"
        assert customer.email == "owner@acme.test"

    async def test_stored_customer_is_reused(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        await set_billing(sample_subscription, provider_customer_id="cust_stored")

        await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        mock_payment_provider.create_customer.assert_not_awaited()
        request = mock_payment_provider.create_checkout_session.await_args.args[0]
        assert request.customer_id == "cust_stored"

    async def test_owner_customer_shared_across_organizations(
        self, checkout_service, sample_subscription, mock_payment_provider, test_db
    ):
        other = OrganizationEntity(
            name="Acme Two", owner_user_id=sample_subscription.owner_user_id
        )
        test_db.add(other)
        await test_db.flush()
        test_db.add(
            SubscriptionEntity(
                owner_user_id=sample_subscription.owner_user_id,
                organization_id=other.id,
                status="FREE",
                plan_code="FREE",
                billing_cycle="MONTHLY",
                cancel_at_period_end=False,
                billing_tax_id=sample_subscription.billing_tax_id,
                provider_customer_id="cust_shared",
            )
        )
        await test_db.commit()

        await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        mock_payment_provider.create_customer.assert_not_awaited()
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.provider_customer_id == "cust_shared"

    async def test_incomplete_profile_blocks_checkout(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        await set_billing(sample_subscription, billing_tax_id=None)

        with pytest.raises(ValidationError):
            await checkout_service.create_checkout(
                sample_subscription.organization_id, PlanCode.PRO_100
            )

        mock_payment_provider.create_customer.assert_not_awaited()
        mock_payment_provider.create_checkout_session.assert_not_awaited()
        assert await checkout_service.list_checkouts(sample_subscription.organization_id) == []

    async def test_customer_failure_opens_no_checkout(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        mock_payment_provider.create_customer.side_effect = PaymentProviderError(
            "customer rejected"
        )

        with pytest.raises(PaymentProviderError):
            await checkout_service.create_checkout(
                sample_subscription.organization_id, PlanCode.PRO_100
            )

        mock_payment_provider.create_checkout_session.assert_not_awaited()
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.provider_customer_id is None


@pytest.mark.asyncio
class TestConfirmPayment:
    async def test_confirm_payment_activates_once(
        self, checkout_service, sample_subscription, clock, mock_notifier
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        subscription = await checkout_service.confirm_payment(
            checkout.checkout_id, paid_evidence()
        )

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.plan_code == PlanCode.PRO_100
        assert subscription.current_period_starts_at == clock.now
        assert subscription.current_period_ends_at == clock.now + timedelta(days=30)
        assert subscription.pending_plan_code is None

        clock.now = clock.now + timedelta(minutes=5)
        again = await checkout_service.confirm_payment(
            checkout.checkout_id, paid_evidence()
        )

        assert again.current_period_ends_at == subscription.current_period_ends_at
        mock_notifier.notify.assert_awaited_once()
        event = mock_notifier.notify.await_args.args[0]
        assert event.kind == "payment_approved"
        assert event.checkout_id == checkout.checkout_id

    async def test_renewal_extends_from_period_end(
        self, checkout_service, sample_subscription, clock
    ):
        period_end = clock.now + timedelta(days=10)
        await SubscriptionRepository().update(
            sample_subscription.id,
            SubscriptionUpdateModel(
                status=SubscriptionStatus.ACTIVE,
                plan_code=PlanCode.PRO_100,
                current_period_ends_at=period_end,
            ),
        )
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100, allow_same_plan=True
        )

        subscription = await checkout_service.confirm_payment(
            checkout.checkout_id, paid_evidence()
        )

        assert subscription.current_period_starts_at == period_end
        assert subscription.current_period_ends_at == period_end + timedelta(days=30)

    async def test_amount_mismatch_leaves_checkout_pending(
        self, checkout_service, sample_subscription
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        with pytest.raises(ValidationError, match="does not match"):
            await checkout_service.confirm_payment(
                checkout.checkout_id, paid_evidence(amount_cents=100)
            )

        stored = await CheckoutSessionRepository().get(checkout.id)
        assert stored.status == CheckoutStatus.PENDING
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.status == SubscriptionStatus.FREE

    async def test_unknown_checkout(self, checkout_service):
        with pytest.raises(NotFoundError):
            await checkout_service.confirm_payment("checkout_missing")


@pytest.mark.asyncio
class TestProviderOutcomes:
    async def test_failed_clears_pending_plan(
        self, checkout_service, sample_subscription
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        assert await checkout_service.apply_provider_outcome(
            checkout, CheckoutStatus.FAILED
        )

        stored = await CheckoutSessionRepository().get(checkout.id)
        assert stored.status == CheckoutStatus.FAILED
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.pending_plan_code is None

        # A late PAID still wins over FAILED
        assert await checkout_service.apply_provider_outcome(
            stored, CheckoutStatus.PAID, paid_evidence()
        )
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.status == SubscriptionStatus.ACTIVE

    async def test_expired_does_not_close_paid_checkout(
        self, checkout_service, sample_subscription
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )
        await checkout_service.confirm_payment(checkout.checkout_id, paid_evidence())
        paid = await CheckoutSessionRepository().get(checkout.id)

        assert not await checkout_service.apply_provider_outcome(
            paid, CheckoutStatus.EXPIRED
        )
        assert (await CheckoutSessionRepository().get(checkout.id)).status == (
            CheckoutStatus.PAID
        )

    async def test_chargeback_expires_subscription(
        self, checkout_service, sample_subscription
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )
        await checkout_service.confirm_payment(checkout.checkout_id, paid_evidence())
        paid = await CheckoutSessionRepository().get(checkout.id)

        assert await checkout_service.apply_provider_outcome(
            paid, CheckoutStatus.CHARGEBACK
        )

        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.status == SubscriptionStatus.EXPIRED
        assert subscription.plan_code == PlanCode.FREE
        assert subscription.expiry_reason == ExpiryReason.PAYMENT_REVERSED

    async def test_chargeback_of_unpaid_checkout_is_ignored(
        self, checkout_service, sample_subscription
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        assert not await checkout_service.apply_provider_outcome(
            checkout, CheckoutStatus.CHARGEBACK
        )


@pytest.mark.asyncio
class TestSimulateAndReconcile:
    async def test_simulate_payment(
        self, checkout_service, sample_subscription, mock_payment_provider, monkeypatch
    ):
        monkeypatch.setattr(settings, "abacatepay_api_key", "test_key")
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.STARTER_50
        )

        subscription = await checkout_service.simulate_payment(
            sample_subscription.organization_id, checkout.checkout_id
        )

        assert subscription.plan_code == PlanCode.STARTER_50
        mock_payment_provider.simulate_payment.assert_awaited_once_with(
            "bill_mock123", metadata={"checkoutId": checkout.checkout_id}
        )

    async def test_simulate_provider_failure_still_confirms(
        self, checkout_service, sample_subscription, mock_payment_provider, monkeypatch
    ):
        monkeypatch.setattr(settings, "abacatepay_api_key", "test_key")
        mock_payment_provider.simulate_payment.side_effect = PaymentProviderError("dev")
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.STARTER_50
        )

        subscription = await checkout_service.simulate_payment(
            sample_subscription.organization_id, checkout.checkout_id
        )
        assert subscription.status == SubscriptionStatus.ACTIVE

    async def test_simulate_is_hidden_in_production(
        self, checkout_service, sample_subscription, monkeypatch
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.STARTER_50
        )
        monkeypatch.setattr(settings, "environment", Environment.PRODUCTION)

        with pytest.raises(NotFoundError):
            await checkout_service.simulate_payment(
                sample_subscription.organization_id, checkout.checkout_id
            )

    async def test_other_organization_cannot_see_checkout(
        self, checkout_service, sample_subscription, second_organization
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.STARTER_50
        )

        with pytest.raises(NotFoundError):
            await checkout_service.get_checkout(
                second_organization.id, checkout.checkout_id
            )

    async def test_reconcile_paid(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )
        mock_payment_provider.list_checkouts.return_value = [
            ProviderCheckout(
                id="bill_mock123",
                url="https://pay.abacatepay.com/bill_mock123",
                status="PAID",
                paidAmount=10000,
                currency="BRL",
            )
        ]

        result = await checkout_service.reconcile_checkout(
            sample_subscription.organization_id, checkout.checkout_id
        )

        assert result.applied is True
        assert result.outcome == CheckoutStatus.PAID
        assert result.checkout.status == CheckoutStatus.PAID
        subscription = await current_subscription(sample_subscription.organization_id)
        assert subscription.plan_code == PlanCode.PRO_100

    async def test_reconcile_matches_by_external_id(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )
        mock_payment_provider.list_checkouts.return_value = [
            ProviderCheckout(
                id="bill_other",
                url="https://pay.abacatepay.com/bill_other",
                status="PENDING",
                products=[{"externalId": checkout.checkout_id, "quantity": 1, "price": 10000}],
            )
        ]

        result = await checkout_service.reconcile_checkout(
            sample_subscription.organization_id, checkout.checkout_id
        )

        assert result.applied is False
        assert result.provider_status == "PENDING"
        assert result.checkout.provider_checkout_id == "bill_other"
        assert result.checkout.status == CheckoutStatus.PENDING

    async def test_reconcile_rejects_untrusted_url(
        self, checkout_service, sample_subscription, mock_payment_provider
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )
        mock_payment_provider.list_checkouts.return_value = [
            ProviderCheckout(id="bill_mock123", url="http://pay.abacatepay.com/x", status="PAID")
        ]

        with pytest.raises(UntrustedRedirect):
            await checkout_service.reconcile_checkout(
                sample_subscription.organization_id, checkout.checkout_id
            )

    async def test_reconcile_unknown_at_provider(
        self, checkout_service, sample_subscription
    ):
        checkout = await checkout_service.create_checkout(
            sample_subscription.organization_id, PlanCode.PRO_100
        )

        result = await checkout_service.reconcile_checkout(
            sample_subscription.organization_id, checkout.checkout_id
        )

        assert result.applied is False
        assert result.provider_status is None
        assert result.checkout.status == CheckoutStatus.PENDING


# ==================== Concurrency ====================


@pytest.mark.asyncio
class TestConcurrentConfirmation:
    async def test_replayed_confirmations_apply_once(
        self, file_session_factory, checkout_service, clock, mock_notifier
    ):
        async with file_session_factory() as session:
            organization = OrganizationEntity(name="Retry", owner_user_id=1)
            session.add(organization)
            await session.flush()
            session.add(
                OrganizationMemberEntity(
                    organization_id=organization.id, user_id=1, role="OWNER"
                )
            )
            session.add(
                SubscriptionEntity(
                    owner_user_id=1,
                    organization_id=organization.id,
                    status="FREE",
                    plan_code="FREE",
                    billing_cycle="MONTHLY",
                    cancel_at_period_end=False,
                    provider_customer_id="cust_existing",
                )
            )
            await session.commit()
            organization_id = organization.id

        checkout = await checkout_service.create_checkout(
            organization_id, PlanCode.PRO_100
        )

        results = await asyncio.gather(
            *(
                checkout_service.confirm_payment(checkout.checkout_id, paid_evidence())
                for _ in range(8)
            )
        )

        assert {r.status for r in results} == {SubscriptionStatus.ACTIVE}
        assert {r.current_period_ends_at for r in results} == {
            clock.now + timedelta(days=30)
        }
        mock_notifier.notify.assert_awaited_once()
        stored = await current_subscription(organization_id)
        assert stored.current_period_starts_at == clock.now
        assert stored.current_period_ends_at == clock.now + timedelta(days=30)
        paid = await CheckoutSessionRepository().get(checkout.id)
        assert paid.status == CheckoutStatus.PAID
        invoices = await InvoiceRepository().list_by_organization(organization_id)
        assert [(i.status, i.checkout_session_id) for i in invoices] == [
            (CheckoutStatus.PAID, checkout.id)
        ]
