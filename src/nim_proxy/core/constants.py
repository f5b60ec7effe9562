"""
Constantes globales pour NIM Proxy.
"""

# ============================================================================
# UPSTREAM
# ============================================================================
DEFAULT_NIM_API_BASE = "https://integrate.api.nvidia.com/v1"
PROBE_TIMEOUT = 10.0       # Sonde de modèle: courte
REQUEST_TIMEOUT = 300.0    # Requête complète: 5 minutes
CONNECT_TIMEOUT = 10.0

# Message minimal envoyé par la sonde
PROBE_MESSAGES = [{"role": "user", "content": "test"}]

# ============================================================================
# VALEURS PAR DÉFAUT DES REQUÊTES
# ============================================================================
DEFAULT_TEMPERATURE = 0.85
DEFAULT_MAX_TOKENS = 16384

# ============================================================================
# AFFICHAGE DU RAISONNEMENT
# ============================================================================
SHOW_REASONING = False
ENABLE_THINKING_MODE = True

REASONING_FIELD = "reasoning_content"
THINK_OPEN_TAG = "<think>"
THINK_CLOSE_TAG = "</think>"

# Marqueurs réémis dans le flux SSE
STREAM_OPEN_MARKER = THINK_OPEN_TAG + "\n"
STREAM_CLOSE_MARKER = THINK_CLOSE_TAG + "\n\n"

# Directive NIM demandant une trace de raisonnement explicite
THINKING_DIRECTIVE = {"chat_template_kwargs": {"thinking": True}}

# ============================================================================
# MODÈLES
# ============================================================================
DEFAULT_MODEL_ALIASES = {
    "gpt-3.5-turbo": "nvidia/llama-3.1-nemotron-ultra-253b-v1",
    "gpt-4": "qwen/qwen3-coder-480b-a35b-instruct",
    "gpt-4-turbo": "moonshotai/kimi-k2-instruct-0905",
    "gpt-4o": "deepseek-ai/deepseek-v3.1",
    "claude-3-opus": "z-ai/glm4.7",
    "claude-3-sonnet": "z-ai/glm5",
    "gemini-pro": "qwen/qwen3-next-80b-a3b-thinking",
}

DEFAULT_THINKING_CAPABLE_MODELS = frozenset({
    "nvidia/llama-3.1-nemotron-ultra-253b-v1",
    "qwen/qwen3-235b-a22b",
    "qwen/qwen3-next-80b-a3b-thinking",
    "qwen/qwen3-coder-480b-a35b-instruct",
})

# Modèles de repli par taille (heuristique sur le nom demandé)
FALLBACK_LARGE_MODEL = "meta/llama-3.1-405b-instruct"
FALLBACK_MEDIUM_MODEL = "meta/llama-3.1-70b-instruct"
FALLBACK_SMALL_MODEL = "meta/llama-3.1-8b-instruct"

FALLBACK_LARGE_HINTS = ("gpt-4", "claude-opus", "405b")
FALLBACK_MEDIUM_HINTS = ("claude", "gemini", "70b")

# ============================================================================
# SERVICE
# ============================================================================
SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy"
MODEL_OWNER = "nvidia-nim-proxy"
DEFAULT_PORT = 3000
