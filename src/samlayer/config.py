"""Configuration settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="SAMLAYER_", protected_namespaces=())

    sam2_model_id: str = "facebook/sam2-hiera-tiny"
    model_input_size: int = 1024
    default_tint: tuple[int, int, int] = (30, 144, 255)
    composite_opacity: float = 0.5
    eraser_hit_radius: float = 15.0
    video_frame_stride: int = 1


settings = Settings()
