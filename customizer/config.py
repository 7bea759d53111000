"""
Configuration management for the Print Customizer
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from loguru import logger


CONFIG_DIR = Path(os.getenv('CUSTOMIZER_CONFIG_DIR', Path(__file__).resolve().parent.parent / 'config'))


class AppConfig(BaseModel):
    """Main application configuration"""

    # Flask settings
    SECRET_KEY: str = Field(default_factory=lambda: os.urandom(24).hex())
    FLASK_ENV: str = "development"
    DEBUG: bool = True
    TESTING: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Upload limits
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB, photo flows
    LOGO_MAX_UPLOAD_SIZE: int = 5 * 1024 * 1024  # 5MB, logo flows

    # Canvas
    CANVAS_MAX_WIDTH: int = 500
    CANVAS_BACKGROUND: str = "#f5f5f5"
    COVER_FIT_BUFFER: float = 1.02
    ZOOM_IN_STEP: float = 1.1
    ZOOM_OUT_STEP: float = 0.9
    CLAMP_ZOOM_TO_COVER: bool = False
    FRAME_BORDER_PX: int = 12

    # Collage
    COLLAGE_TILE_SIZE: int = 400
    COLLAGE_GAP_PX: int = 4
    COLLAGE_PLACEHOLDER_COLOR: str = "#e5e7eb"

    # Output
    JPEG_QUALITY: int = 92

    # Sessions
    SESSION_IDLE_TIMEOUT: int = 1800  # seconds; closed on the next registry access
    MAX_SESSIONS: int = 500


class ProductConfig(BaseModel):
    """Static catalog product definition"""
    id: str
    name: str
    category: str
    base_price: int
    design_template: Optional[str] = None
    sizes: List[Dict] = []
    frames: List[Dict] = []
    thickness: List[Dict] = []
    backgrounds: bool = False
    images: List[str] = []
    variant_images: Dict[str, List[str]] = {}
    requires_text: bool = False
    upload_kind: str = "photo"  # photo, logo
    quantity_from_size: bool = False


def load_yaml_config(file_path) -> Dict:
    """Load configuration from YAML file"""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading config file {file_path}: {e}")
        return {}


def load_config(environment: str = "development", overrides: Optional[Dict] = None) -> AppConfig:
    """Load configuration with environment-specific overrides"""

    # Load base settings
    base_config = load_yaml_config(CONFIG_DIR / "settings.yaml")

    # Load environment-specific settings
    env_config = load_yaml_config(CONFIG_DIR / f"settings_{environment}.yaml")

    # Merge configurations (env overrides base)
    config_dict = {**base_config, **env_config}

    # Apply environment variable overrides
    env_overrides = {
        'FLASK_ENV': os.getenv('FLASK_ENV', environment),
        'LOG_LEVEL': os.getenv('LOG_LEVEL'),
        'LOG_FILE': os.getenv('LOG_FILE'),
        'SECRET_KEY': os.getenv('SECRET_KEY'),
        'MAX_UPLOAD_SIZE': os.getenv('MAX_UPLOAD_SIZE'),
    }

    # Only include non-None values
    env_overrides = {k: v for k, v in env_overrides.items() if v is not None}
    config_dict.update(env_overrides)

    # Special handling for boolean DEBUG flag
    if 'FLASK_ENV' in config_dict:
        config_dict['DEBUG'] = config_dict['FLASK_ENV'] == 'development'

    if overrides:
        config_dict.update(overrides)

    try:
        return AppConfig(**config_dict)
    except ValueError as e:
        logger.error(f"Configuration validation error: {e}")
        # Return default config on validation error
        return AppConfig()


# Global config instance
_config_instance = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config(os.getenv('FLASK_ENV', 'development'))
    return _config_instance


def set_config(config: AppConfig) -> None:
    """Replace the global configuration instance (used by the app factory)"""
    global _config_instance
    _config_instance = config


def load_product_config() -> Dict[str, ProductConfig]:
    """Load static catalog products from YAML"""
    config_data = load_yaml_config(CONFIG_DIR / "products.yaml")

    products = {}
    for item in config_data.get("products", []):
        try:
            product = ProductConfig(**item)
            products[product.id] = product
        except ValueError as e:
            logger.error(f"Error loading product config {item.get('id', 'unknown')}: {e}")

    logger.info(f"Loaded {len(products)} product configurations")
    return products
