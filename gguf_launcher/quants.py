"""
Quantization tables.

The shard classification is a static lookup: a label listed in
SINGLE_FILE_QUANTS is published as one ``<model>-<quant>.gguf`` file, every
other label is published as numbered shards inside a ``<quant>/``
subdirectory. A new single-file label has to be added here or it will be
treated as sharded.
"""

from typing import Dict, FrozenSet

KNOWN_QUANTS: FrozenSet[str] = frozenset(
    {
        "IQ1_S",
        "IQ1_M",
        "IQ2_XXS",
        "IQ2_M",
        "IQ3_XXS",
        "Q2_K",
        "Q2_K_L",
        "Q2_K_XL",
        "Q3_K_S",
        "Q3_K_M",
        "Q3_K_XL",
        "Q4_0",
        "Q4_1",
        "Q4_K_S",
        "Q4_K_M",
        "Q4_K_XL",
        "Q5_K_S",
        "Q5_K_M",
        "Q5_K_XL",
        "Q6_K",
        "Q6_K_XL",
        "Q8_0",
        "Q8_K_XL",
        "BF16",
        "F16",
    }
)

SINGLE_FILE_QUANTS: FrozenSet[str] = frozenset(
    {
        "IQ1_S",
        "IQ1_M",
        "IQ2_XXS",
        "IQ2_M",
        "IQ3_XXS",
        "Q2_K",
        "Q2_K_L",
        "Q2_K_XL",
        "Q3_K_S",
    }
)

# Free space (GB) required before a download starts, including headroom
REQUIRED_DISK_GB: Dict[str, int] = {
    "IQ1_S": 40,
    "IQ1_M": 42,
    "IQ2_XXS": 45,
    "IQ2_M": 48,
    "IQ3_XXS": 52,
    "Q2_K": 50,
    "Q2_K_L": 52,
    "Q2_K_XL": 52,
    "Q3_K_S": 55,
    "Q3_K_M": 60,
    "Q3_K_XL": 62,
    "Q4_0": 70,
    "Q4_1": 75,
    "Q4_K_S": 70,
    "Q4_K_M": 75,
    "Q4_K_XL": 78,
    "Q5_K_S": 85,
    "Q5_K_M": 88,
    "Q5_K_XL": 90,
    "Q6_K": 100,
    "Q6_K_XL": 105,
    "Q8_0": 125,
    "Q8_K_XL": 140,
    "BF16": 230,
    "F16": 230,
}

DEFAULT_REQUIRED_DISK_GB = 70

# Unsloth "dynamic" uploads prefix the label, e.g. UD-Q4_K_XL
DYNAMIC_PREFIX = "UD-"


def base_quant(label: str) -> str:
    """
    Strip the dynamic-quant prefix from a label.

    Args:
        label: Quantization label (e.g. "UD-Q4_K_XL" or "Q8_0")

    Returns:
        The label without the "UD-" prefix
    """
    if label.startswith(DYNAMIC_PREFIX):
        return label[len(DYNAMIC_PREFIX) :]
    return label


def is_known_quant(label: str) -> bool:
    return base_quant(label) in KNOWN_QUANTS


def is_single_file(label: str) -> bool:
    """
    Classify a quantization label as single-file or sharded.

    Args:
        label: Quantization label, already normalised to upper case

    Returns:
        True if the label is in the single-file allow-list
    """
    return label in SINGLE_FILE_QUANTS


def required_disk_gb(label: str) -> int:
    return REQUIRED_DISK_GB.get(base_quant(label), DEFAULT_REQUIRED_DISK_GB)
