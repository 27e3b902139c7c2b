"""Run the ledger API server with settings from the environment."""
import uvicorn

from finance_ledger.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "finance_ledger.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
        loop="asyncio"
    )
