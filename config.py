from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # 自動開局倒數（兩人房）
    countdown_seconds: int = 10
    # 抽水比例，只對彩池收取
    house_fee_rate: Decimal = Decimal("0.05")
    # "rake" 或 "winner_takes_stakes"
    payout_policy: str = "rake"
    # 擲骰迴圈上限，正常的骰子永遠不會碰到
    max_resolution_rounds: int = 1000
    history_limit: int = 100
    currency: str = "TON"
    finished_lobby_ttl_seconds: int = 600
    allowed_origins: List[str] = ["*"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "DICE_"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
