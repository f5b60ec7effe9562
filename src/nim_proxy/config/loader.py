"""src.nim_proxy.config.loader

Chargement de la configuration TOML.

Règle de priorité:
- env > toml > valeurs par défaut de `core.constants`
- le fichier peut référencer l'environnement via ${VAR}
"""
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional

from ..core.exceptions import ConfigurationError

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None

CONFIG_PATH_ENV = "NIM_PROXY_CONFIG"

_ENV_VAR_RE = re.compile(r'\$\{([^}]+)\}')

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Une variable absente de l'environnement est laissée telle quelle.
    """
    if isinstance(obj, str):
        def replace_env_var(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        return _ENV_VAR_RE.sub(replace_env_var, obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _env_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Applique les variables d'environnement prioritaires sur le TOML.

    NIM_API_BASE, NIM_API_KEY, NIM_SHOW_REASONING, NIM_ENABLE_THINKING.
    """
    upstream = dict(config.get("upstream", {}))
    display = dict(config.get("display", {}))

    if os.environ.get("NIM_API_BASE"):
        upstream["base_url"] = os.environ["NIM_API_BASE"]
    if os.environ.get("NIM_API_KEY"):
        upstream["api_key"] = os.environ["NIM_API_KEY"]
    if os.environ.get("NIM_SHOW_REASONING") is not None:
        display["show_reasoning"] = _env_bool(os.environ["NIM_SHOW_REASONING"])
    if os.environ.get("NIM_ENABLE_THINKING") is not None:
        display["enable_thinking_mode"] = _env_bool(os.environ["NIM_ENABLE_THINKING"])

    merged = dict(config)
    merged["upstream"] = upstream
    merged["display"] = display
    return merged


def _clear_config_cache():
    """Vide le cache de configuration."""
    global _config_cache
    _config_cache = None


def _default_config_path() -> str:
    # Structure: project/src/nim_proxy/config/loader.py
    current_file = os.path.abspath(__file__)
    project_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(current_file))))
    return os.path.join(project_dir, "config.toml")


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"Fichier de configuration invalide: {path} ({e})",
            config_key="config_path"
        ) from e


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration depuis config.toml.

    Args:
        config_path: Chemin vers le fichier config (optionnel, sinon
            $NIM_PROXY_CONFIG puis config.toml à la racine du projet)

    Returns:
        Dictionnaire de configuration (env appliqué)

    Raises:
        ConfigurationError: Si un fichier explicite n'existe pas ou est invalide
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    explicit = config_path or os.environ.get(CONFIG_PATH_ENV)
    path = Path(explicit or _default_config_path())

    if path.exists():
        raw_config = _read_toml(path)
    elif explicit:
        raise ConfigurationError(
            message=f"Fichier de configuration non trouvé: {path}",
            config_key="config_path"
        )
    else:
        # Pas de config.toml: on tourne sur l'environnement seul
        raw_config = {}

    _config_cache = apply_env_overrides(_expand_env_vars(raw_config))
    return _config_cache


def reload_config(config_path: str = None) -> Dict[str, Any]:
    """
    Recharge la configuration depuis le fichier.

    Returns:
        Nouvelle configuration chargée
    """
    _clear_config_cache()
    return load_config(config_path)


def get_config() -> Dict[str, Any]:
    """
    Retourne la configuration en cache.

    Returns:
        Configuration actuelle
    """
    if _config_cache is None:
        return load_config()
    return _config_cache
