"""External integrations: Solana RPC, payments, pricing and HTTP proxies."""
