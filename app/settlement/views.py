"""
DRF views for the settlement engine.

Views are thin: they validate the request shape, build an Actor from the
authenticated user and call the settlement services. Domain errors raised
by the services are rendered by core.exception_handler.

Related files:
    - services/: EscrowService, WalletLedger, PayoutService, DisputeService,
      DeliveryTrigger
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints (prefix /api/v1/settlement/):
    GET  escrows/<order_id>/ - Escrow for an order
    POST escrows/<order_id>/confirm-receipt/ - Buyer releases the escrow
    POST escrows/<uuid>/force-release/ - Admin release
    POST escrows/<uuid>/force-refund/ - Admin refund
    GET  vendors/<uuid>/wallet/ - Wallet balance
    GET  vendors/<uuid>/wallet/transactions/ - Wallet history
    GET  vendors/<uuid>/payouts/ - Payout history
    POST vendors/<uuid>/payouts/ - Request a withdrawal
    POST payouts/<uuid>/processing/ - Admin: submitted to provider
    POST payouts/<uuid>/resolve/ - Admin: settle by hand
    POST disputes/ - File a dispute
    GET  disputes/<uuid>/ - Dispute detail
    POST disputes/<uuid>/investigate/ - Admin
    POST disputes/<uuid>/resolve/ - Admin
    POST disputes/<uuid>/close/ - Admin
    POST deliveries/proof/ - Vendor proof of delivery

Security:
    - All endpoints require authentication
    - Admin endpoints additionally require is_staff
    - Ownership (buyer / vendor operator) is enforced by the services
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import serializers, status
from rest_framework.pagination import LimitOffsetPagination
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from settlement.serializers import (
    AdminEscrowActionSerializer,
    DeliveryOutcomeSerializer,
    DisputeCreateSerializer,
    DisputeResolveSerializer,
    DisputeSerializer,
    EscrowTransactionSerializer,
    PayoutRequestSerializer,
    PayoutResolveSerializer,
    PayoutSerializer,
    ProofOfDeliverySerializer,
    WalletBalanceSerializer,
    WalletTransactionSerializer,
)
from settlement.services import (
    DeliveryTrigger,
    DisputeService,
    EscrowService,
    PayoutService,
    WalletLedger,
)
from settlement.types import Actor

logger = logging.getLogger(__name__)

PAGINATION_PARAMETERS = [
    OpenApiParameter("limit", int, description="Page size (1-200, default 50)"),
    OpenApiParameter("offset", int, description="Number of items to skip"),
]


class SettlementPagination(LimitOffsetPagination):
    default_limit = 50
    max_limit = 200


class WalletHistoryQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(
        min_value=1, max_value=SettlementPagination.max_limit, default=50
    )
    offset = serializers.IntegerField(min_value=0, default=0)


def _actor(request) -> Actor:
    return Actor.from_user(request.user)


# =============================================================================
# Escrow
# =============================================================================


class EscrowDetailView(APIView):
    """
    Escrow for an order.

    GET /api/v1/settlement/escrows/<order_id>/

    Visible to the order's buyer, the vendor's operator and admins.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get escrow for order",
        tags=["Escrow"],
        responses={200: EscrowTransactionSerializer},
    )
    def get(self, request, order_id: str):
        escrow = EscrowService.get_escrow(order_id, actor=_actor(request))
        return Response(EscrowTransactionSerializer(escrow).data)


class ConfirmReceiptView(APIView):
    """
    Buyer confirms receipt and releases the escrow to the vendor.

    POST /api/v1/settlement/escrows/<order_id>/confirm-receipt/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Confirm receipt",
        tags=["Escrow"],
        request=None,
        responses={200: EscrowTransactionSerializer},
    )
    def post(self, request, order_id: str):
        escrow = EscrowService.confirm_receipt(order_id, actor=_actor(request))
        return Response(EscrowTransactionSerializer(escrow).data)


class ForceReleaseView(APIView):
    """
    Admin override releasing a held escrow.

    POST /api/v1/settlement/escrows/<uuid>/force-release/

    Request body:
        - reason: Why the escrow is released by hand (required)
        - expected_version: Version the admin screen was showing (optional)
    """

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Force-release escrow",
        tags=["Escrow", "Admin"],
        request=AdminEscrowActionSerializer,
        responses={200: EscrowTransactionSerializer},
    )
    def post(self, request, escrow_id):
        serializer = AdminEscrowActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        escrow = EscrowService.force_release(
            escrow_id,
            reason=serializer.validated_data["reason"],
            actor=_actor(request),
            expected_version=serializer.validated_data.get("expected_version"),
        )
        return Response(EscrowTransactionSerializer(escrow).data)


class ForceRefundView(APIView):
    """
    Admin override refunding a held or disputed escrow.

    POST /api/v1/settlement/escrows/<uuid>/force-refund/
    """

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Force-refund escrow",
        tags=["Escrow", "Admin"],
        request=AdminEscrowActionSerializer,
        responses={200: EscrowTransactionSerializer},
    )
    def post(self, request, escrow_id):
        serializer = AdminEscrowActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        escrow = EscrowService.force_refund(
            escrow_id,
            reason=serializer.validated_data["reason"],
            actor=_actor(request),
            expected_version=serializer.validated_data.get("expected_version"),
        )
        return Response(EscrowTransactionSerializer(escrow).data)


# =============================================================================
# Wallet
# =============================================================================


class WalletBalanceView(APIView):
    """
    Vendor wallet balance.

    GET /api/v1/settlement/vendors/<uuid>/wallet/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get wallet balance",
        tags=["Wallet"],
        responses={200: WalletBalanceSerializer},
    )
    def get(self, request, vendor_id):
        balance = WalletLedger.get_balance(vendor_id, actor=_actor(request))
        data = {
            "vendor_id": vendor_id,
            "balance": balance.amount,
            "currency": balance.currency,
        }
        return Response(WalletBalanceSerializer(data).data)


class WalletTransactionListView(APIView):
    """
    Vendor wallet history, newest first.

    GET /api/v1/settlement/vendors/<uuid>/wallet/transactions/

    Query params:
        - limit: Number of entries (default 50, max 200)
        - offset: Pagination offset
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List wallet transactions",
        tags=["Wallet"],
        parameters=PAGINATION_PARAMETERS,
        responses={200: WalletTransactionSerializer(many=True)},
    )
    def get(self, request, vendor_id):
        query = WalletHistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        entries = WalletLedger.list_transactions(
            vendor_id,
            actor=_actor(request),
            limit=query.validated_data["limit"],
            offset=query.validated_data["offset"],
        )
        return Response(
            {
                "count": WalletLedger.count_transactions(vendor_id),
                "limit": query.validated_data["limit"],
                "offset": query.validated_data["offset"],
                "results": WalletTransactionSerializer(entries, many=True).data,
            }
        )


# =============================================================================
# Payouts
# =============================================================================


class VendorPayoutListView(APIView):
    """
    Vendor payouts.

    GET  /api/v1/settlement/vendors/<uuid>/payouts/ - Payout history
    POST /api/v1/settlement/vendors/<uuid>/payouts/ - Request a withdrawal

    The withdrawal debits the wallet immediately; a failed transfer is
    credited back when the provider reports the failure.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List payouts",
        tags=["Payouts"],
        parameters=PAGINATION_PARAMETERS,
        responses={200: PayoutSerializer(many=True)},
    )
    def get(self, request, vendor_id):
        payouts = PayoutService.list_payouts(vendor_id, actor=_actor(request))
        paginator = SettlementPagination()
        page = paginator.paginate_queryset(payouts, request, view=self)
        return paginator.get_paginated_response(PayoutSerializer(page, many=True).data)

    @extend_schema(
        summary="Request payout",
        tags=["Payouts"],
        request=PayoutRequestSerializer,
        responses={201: PayoutSerializer},
    )
    def post(self, request, vendor_id):
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payout = PayoutService.request_payout(
            vendor_id,
            amount=serializer.validated_data["amount"],
            destination=serializer.to_destination(),
            actor=_actor(request),
            idempotency_key=serializer.validated_data.get("idempotency_key"),
        )
        return Response(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)


class PayoutProcessingView(APIView):
    """
    Admin: record that a payout was submitted to the provider.

    POST /api/v1/settlement/payouts/<uuid>/processing/
    """

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Mark payout processing",
        tags=["Payouts", "Admin"],
        request=None,
        responses={200: PayoutSerializer},
    )
    def post(self, request, payout_id):
        payout = PayoutService.mark_processing(payout_id, actor=_actor(request))
        return Response(PayoutSerializer(payout).data)


class PayoutResolveView(APIView):
    """
    Admin: settle a payout the provider never reported on.

    POST /api/v1/settlement/payouts/<uuid>/resolve/
    """

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Resolve payout manually",
        tags=["Payouts", "Admin"],
        request=PayoutResolveSerializer,
        responses={200: PayoutSerializer},
    )
    def post(self, request, payout_id):
        serializer = PayoutResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payout = PayoutService.resolve_manually(
            payout_id,
            outcome=serializer.validated_data["outcome"],
            actor=_actor(request),
            reason=serializer.validated_data["reason"],
        )
        return Response(PayoutSerializer(payout).data)


# =============================================================================
# Disputes
# =============================================================================


class DisputeCreateView(APIView):
    """
    File a dispute, freezing the order's escrow.

    POST /api/v1/settlement/disputes/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="File dispute",
        tags=["Disputes"],
        request=DisputeCreateSerializer,
        responses={201: DisputeSerializer},
    )
    def post(self, request):
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dispute = DisputeService.file_dispute(
            order_id=data["order_id"],
            filed_by_type=data["filed_by_type"],
            reason=data["reason"],
            actor=_actor(request),
            dispute_type=data["dispute_type"],
            evidence_urls=data["evidence_urls"],
        )
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)


class DisputeDetailView(APIView):
    """GET /api/v1/settlement/disputes/<uuid>/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get dispute",
        tags=["Disputes"],
        responses={200: DisputeSerializer},
    )
    def get(self, request, dispute_id):
        dispute = DisputeService.get_dispute(dispute_id, actor=_actor(request))
        return Response(DisputeSerializer(dispute).data)


class DisputeInvestigateView(APIView):
    """POST /api/v1/settlement/disputes/<uuid>/investigate/"""

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Start investigation",
        tags=["Disputes", "Admin"],
        request=None,
        responses={200: DisputeSerializer},
    )
    def post(self, request, dispute_id):
        dispute = DisputeService.start_investigation(dispute_id, actor=_actor(request))
        return Response(DisputeSerializer(dispute).data)


class DisputeResolveView(APIView):
    """
    Admin decision on a dispute.

    POST /api/v1/settlement/disputes/<uuid>/resolve/

    Request body:
        - outcome: "release" (pay the vendor) or "refund" (return to buyer)
        - resolution: Decision text kept on the dispute
    """

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Resolve dispute",
        tags=["Disputes", "Admin"],
        request=DisputeResolveSerializer,
        responses={200: DisputeSerializer},
    )
    def post(self, request, dispute_id):
        serializer = DisputeResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        dispute = DisputeService.resolve(
            dispute_id,
            resolution=serializer.validated_data["resolution"],
            outcome=serializer.validated_data["outcome"],
            actor=_actor(request),
        )
        return Response(DisputeSerializer(dispute).data)


class DisputeCloseView(APIView):
    """POST /api/v1/settlement/disputes/<uuid>/close/"""

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Close dispute",
        tags=["Disputes", "Admin"],
        request=None,
        responses={200: DisputeSerializer},
    )
    def post(self, request, dispute_id):
        dispute = DisputeService.close(dispute_id, actor=_actor(request))
        return Response(DisputeSerializer(dispute).data)


# =============================================================================
# Deliveries
# =============================================================================


class ProofOfDeliveryView(APIView):
    """
    Vendor uploads proof of delivery for an order.

    POST /api/v1/settlement/deliveries/proof/

    Counts as a ``delivered`` event: a held escrow is released.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Upload proof of delivery",
        tags=["Deliveries"],
        request=ProofOfDeliverySerializer,
        responses={200: DeliveryOutcomeSerializer},
    )
    def post(self, request):
        serializer = ProofOfDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = DeliveryTrigger.record_proof_of_delivery(
            order_id=data["order_id"],
            recipient_name=data["recipient_name"],
            photo_ref=data["photo_ref"],
            actor=_actor(request),
        )
        return Response({"order_id": data["order_id"], "outcome": outcome})
