"""Default configurations for lance-context."""

# Glob patterns selecting files to index
DEFAULT_PATTERNS: list[str] = [
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.py",
    "**/*.go",
    "**/*.rs",
    "**/*.java",
    "**/*.rb",
    "**/*.php",
    "**/*.c",
    "**/*.cpp",
    "**/*.h",
    "**/*.hpp",
    "**/*.cs",
    "**/*.swift",
    "**/*.kt",
]

# Glob patterns that are never indexed
DEFAULT_EXCLUDE_PATTERNS: list[str] = [
    "**/node_modules/**",
    "**/dist/**",
    "**/.git/**",
    "**/.lance-context/**",
    "**/build/**",
    "**/target/**",
    "**/__pycache__/**",
    "**/venv/**",
    "**/.venv/**",
    "**/vendor/**",
    "**/*.min.js",
    "**/*.min.css",
]

# Language mappings for parsers
LANGUAGE_MAPPINGS: dict[str, str] = {
    ".py": "python",
    ".pyw": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".c": "c",
    ".h": "c",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".rb": "ruby",
    ".swift": "swift",
    ".kt": "kotlin",
}

# Top-level node types treated as chunk boundaries, per tree-sitter grammar
SYMBOL_NODE_TYPES: dict[str, dict[str, str]] = {
    "python": {
        "function_definition": "function",
        "class_definition": "class",
    },
    "javascript": {
        "function_declaration": "function",
        "generator_function_declaration": "function",
        "class_declaration": "class",
        "method_definition": "method",
        "lexical_declaration": "variable",
    },
    "typescript": {
        "function_declaration": "function",
        "class_declaration": "class",
        "abstract_class_declaration": "class",
        "interface_declaration": "interface",
        "type_alias_declaration": "type",
        "enum_declaration": "enum",
        "method_definition": "method",
        "lexical_declaration": "variable",
    },
    "go": {
        "function_declaration": "function",
        "method_declaration": "method",
        "type_declaration": "type",
    },
    "rust": {
        "function_item": "function",
        "struct_item": "struct",
        "enum_item": "enum",
        "impl_item": "impl",
        "trait_item": "trait",
        "mod_item": "module",
    },
    "java": {
        "class_declaration": "class",
        "interface_declaration": "interface",
        "enum_declaration": "enum",
        "method_declaration": "method",
    },
}
SYMBOL_NODE_TYPES["tsx"] = SYMBOL_NODE_TYPES["typescript"]

# Wrapper nodes whose single declaration child carries the symbol
EXPORT_NODE_TYPES = {"export_statement", "decorated_definition"}

# Chunking defaults and bounds
DEFAULT_MAX_LINES = 100
MIN_MAX_LINES = 10
MAX_MAX_LINES = 500
DEFAULT_OVERLAP = 20
MAX_OVERLAP = 50

# Hybrid search defaults
DEFAULT_SEMANTIC_WEIGHT = 0.7
DEFAULT_KEYWORD_WEIGHT = 0.3
DEFAULT_SEARCH_LIMIT = 10
MIN_CANDIDATES = 30
CANDIDATE_MULTIPLIER = 3

# Embedding backends: default model and dimensions
JINA_API_URL = "https://api.jina.ai/v1/embeddings"
DEFAULT_OLLAMA_URL = "http://localhost:11434"

DEFAULT_EMBEDDING_MODELS: dict[str, str] = {
    "jina": "jina-embeddings-v2-base-code",
    "ollama": "nomic-embed-text",
    "sentence-transformers": "sentence-transformers/all-MiniLM-L6-v2",
}

MODEL_DIMENSIONS: dict[str, int] = {
    "jina-embeddings-v2-base-code": 768,
    "jina-embeddings-v3": 1024,
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
}

# Per-backend request batch sizes (texts per request group)
DEFAULT_BATCH_SIZES: dict[str, int] = {
    "jina": 200,
    "ollama": 10,
    "sentence-transformers": 64,
}

# Indexing
MAX_FILE_SIZE_BYTES = 1024 * 1024
BINARY_SNIFF_BYTES = 8192
DEFAULT_CHECKPOINT_INTERVAL = 25
DEFAULT_FILE_CONCURRENCY = 4
INDEX_DIR_NAME = ".lance-context"
SCHEMA_VERSION = 1


def get_language_from_extension(extension: str) -> str:
    """Get language name from file extension (case-insensitive)."""
    return LANGUAGE_MAPPINGS.get(extension.lower(), "text")


def get_model_dimensions(model_name: str, default: int = 768) -> int:
    """Return the known vector dimension for a model name."""
    return MODEL_DIMENSIONS.get(model_name, default)
