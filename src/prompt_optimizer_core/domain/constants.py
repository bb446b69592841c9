"""
Domain Constants

Default tables shared across the optimizer. These are copied into a
Catalog (see optimizer_config) at startup; code paths read the catalog,
not these module globals.
"""

# Marker for a value that is absent from a document
NOT_PRESENT_VALUE = "Not Present"

# Ground truth column in accuracy snapshots
GROUND_TRUTH_KEY = "Ground Truth"

# Prefix written in place of a value when extraction failed
EXTRACTION_ERROR_PREFIX = "Error:"

CATALOG_VERSION = "2025.1"

# Models offered for extraction testing
DEFAULT_TEST_MODELS = [
    "gemini-2.5-flash",
    "gemini-3-flash-preview",
    "claude-haiku-4-5-20251001",
    # "claude-sonnet-4-5-20250929",
]

# Models suitable for prompt generation
PROMPT_GENERATION_MODELS = [
    "claude-sonnet-4-5-20250929",
    "gemini-2.5-pro",
]

# Field type -> default comparison strategy
DEFAULT_COMPARE_TYPES = {
    "string": "near-exact-string",
    "float": "numeric-tolerance",
    "number": "numeric-tolerance",
    "date": "date-exact",
    "enum": "exact-string",
    "multiSelect": "list-unordered",
    "boolean": "boolean",
}

# Upstream field type aliases
FIELD_TYPE_ALIASES = {
    "dropdown_multi": "multiSelect",
    "taxonomy": "string",
}

# Keyword in template key -> document type hint (first match wins)
DOCUMENT_TYPE_HINTS = [
    (("nda", "confidential"), "NDA (Non-Disclosure Agreement)"),
    (("msa", "master"), "MSA (Master Service Agreement)"),
    (("sow", "statement"), "SOW (Statement of Work)"),
    (("lease", "rental"), "Lease Agreement"),
    (("contract",), "Contract"),
    (("invoice",), "Invoice"),
    (("amendment",), "Amendment"),
]

# Enum-like field types
DROPDOWN_FIELD_TYPES = ("enum", "multiSelect", "dropdown_multi", "taxonomy")
