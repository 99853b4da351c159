"""
Swap Router - STORIES market data and Jupiter SOL -> STORIES swaps.
"""

import math

from fastapi import APIRouter, Query

from ..core.errors import APIError, UpstreamError, bad_request
from ..core.logging import get_logger
from ..services.jupiter_service import SwapTransactionRequest, jupiter_service
from ..services.price_service import PriceUnavailableError, price_service

logger = get_logger(__name__)

router = APIRouter()

MIN_SLIPPAGE = 0.1
MAX_SLIPPAGE = 50.0


@router.get("/price")
async def stories_price():
    """Current STORIES pair data from DexScreener."""
    try:
        summary = await price_service.get_pair_summary()
    except PriceUnavailableError as e:
        logger.error("swap_price_unavailable", error=str(e))
        raise APIError(503, "PRICE_UNAVAILABLE", "Failed to fetch STORIES price")
    return {"success": True, "data": summary}


@router.get("/quote")
async def swap_quote(
    amount_sol: float = Query(...),
    slippage: float = Query(1.0),
):
    """Quote a SOL -> STORIES swap."""
    if not math.isfinite(amount_sol) or amount_sol <= 0:
        raise bad_request("Invalid amount", "amount_sol must be greater than 0")
    if not MIN_SLIPPAGE <= slippage <= MAX_SLIPPAGE:
        raise bad_request(
            "Invalid slippage",
            f"Slippage must be between {MIN_SLIPPAGE}% and {MAX_SLIPPAGE:g}%",
        )

    quote_request = jupiter_service.build_quote_request(amount_sol, slippage)
    try:
        quote = await jupiter_service.get_quote(quote_request)
    except UpstreamError as e:
        raise APIError(502, "JUPITER_ERROR", "Failed to get swap quote", details=e.detail[:500])

    return {
        "success": True,
        "data": {
            "quote": quote,
            "input_amount_lamports": quote_request.amount,
            "slippage_bps": quote_request.slippageBps,
        },
    }


@router.post("/transaction")
async def swap_transaction(payload: SwapTransactionRequest):
    """Build the Jupiter swap transaction for the client to sign."""
    try:
        result = await jupiter_service.get_swap_transaction(
            payload.quote_response, payload.user_public_key
        )
    except UpstreamError as e:
        raise APIError(502, "JUPITER_ERROR", "Failed to build swap transaction", details=e.detail[:500])

    swap_tx = result.get("swapTransaction")
    if not swap_tx:
        raise APIError(502, "JUPITER_ERROR", "Jupiter response did not include a transaction")

    return {
        "success": True,
        "data": {
            "swapTransaction": swap_tx,
            "lastValidBlockHeight": result.get("lastValidBlockHeight"),
        },
    }
