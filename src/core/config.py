from typing import Any, Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    ENVIRONMENT_NAME: str = "Development"

    @property
    def is_production(self):
        return self.ENVIRONMENT_NAME == "Production"

    PROJECT_NAME: str = "stacks-tx-history"

    # testnet | mainnet
    STACKS_NETWORK: str = "testnet"
    # local devnet node instead of the public API
    MOCKNET: bool = False

    STACKS_API_URL: str = "https://api.testnet.hiro.so"
    STACKS_API_WS_URL: Optional[str] = None
    EXPLORER_URL: str = "https://explorer.stacks.co"

    SEND_MANY_CONTRACT_ADDRESS: str = "ST3F1X4QGV2SM8XD96X45M6RTQXKA1PZJZZCQAB4B"

    # events per page, the API caps event_limit on its side as well
    EVENTS_PAGE_SIZE: int = 400
    MAX_PAGINATION_ROUNDS: int = 1000
    REQUEST_TIMEOUT: float = 30.0

    STORAGE_ROOT: str = "~/.stacks-tx-history"
    INDEX_FILE_NAME: str = "index.json"

    # Seq log
    SEQ_SERVER_URL: Optional[str] = None
    SEQ_SERVER_API_KEY: Optional[str] = None

    @field_validator("STACKS_API_WS_URL", mode="before")
    def assemble_ws_url(cls, v: str | None, info: ValidationInfo) -> Any:
        if isinstance(v, str) and v:
            return v
        api_url = info.data.get("STACKS_API_URL") or ""
        if api_url.startswith("https://"):
            return f"wss://{api_url[len('https://'):]}/extended/v1/ws"
        if api_url.startswith("http://"):
            return f"ws://{api_url[len('http://'):]}/extended/v1/ws"
        return v

    class Config:

        case_sensitive = True
        env_file = "../.env"
        extra = "allow"
        validate_default = True


settings = Settings()
