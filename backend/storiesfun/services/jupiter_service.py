"""
Jupiter API Service

Thin proxy over the Jupiter v6 quote/swap endpoints used by the SOL -> STORIES
swap widget. The returned swap transaction is signed and sent by the client.
"""

from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from ..core.config import settings
from ..core.errors import UpstreamError
from ..core.logging import get_logger

logger = get_logger(__name__)

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


class JupiterQuoteRequest(BaseModel):
    inputMint: str
    outputMint: str
    amount: int
    slippageBps: int = 50


class SwapTransactionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    quote_response: Dict[str, Any]
    user_public_key: str = Field(..., min_length=1)


def sol_to_lamports(amount_sol: float) -> int:
    return int(round(amount_sol * LAMPORTS_PER_SOL))


def slippage_to_bps(slippage_percent: float) -> int:
    return int(round(slippage_percent * 100))


class JupiterService:
    """Jupiter v6 client for SOL -> STORIES swaps."""

    def __init__(self, api_url: Optional[str] = None):
        self.api_url = (api_url or settings.jupiter_api_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=30)

    def build_quote_request(self, amount_sol: float, slippage_percent: float) -> JupiterQuoteRequest:
        return JupiterQuoteRequest(
            inputMint=SOL_MINT,
            outputMint=settings.stories_token_mint,
            amount=sol_to_lamports(amount_sol),
            slippageBps=slippage_to_bps(slippage_percent),
        )

    async def get_quote(self, quote_request: JupiterQuoteRequest) -> Dict[str, Any]:
        """Get quote from Jupiter API"""
        params = {
            "inputMint": quote_request.inputMint,
            "outputMint": quote_request.outputMint,
            "amount": str(quote_request.amount),
            "slippageBps": str(quote_request.slippageBps),
        }

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(f"{self.api_url}/quote", params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("jupiter_quote_failed", status=response.status, detail=error_text[:200])
                    raise UpstreamError("Jupiter", response.status, error_text)
                return await response.json()

    async def get_swap_transaction(self, quote_response: Dict[str, Any], user_public_key: str) -> Dict[str, Any]:
        """Get swap transaction from Jupiter API"""
        payload = {
            "quoteResponse": quote_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(f"{self.api_url}/swap", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("jupiter_swap_failed", status=response.status, detail=error_text[:200])
                    raise UpstreamError("Jupiter", response.status, error_text)
                return await response.json()


# Global service instance
jupiter_service = JupiterService()
