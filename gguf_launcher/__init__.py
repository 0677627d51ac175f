"""
GGUF launcher package.

This package configures, downloads and launches llama.cpp for running GGUF
models that are larger than the available RAM. The heavy lifting (memory
mapped weights, quantized tensors, KV cache) happens inside the llama.cpp
binaries; this package only prepares their command lines.

Main Components:
    - config: Typed settings loaded from a config.env file
    - prerequisites: Binary, download client, disk space and port checks
    - retry: Exponential backoff policy for downloads
    - sources_hf: HuggingFace Hub download utilities
    - model_manager: Download orchestration and model path resolution
    - commands: llama-cli / llama-server argument builders
    - launcher: Process execution and server lifecycle
    - cli: Click command line interface
"""

__version__ = "0.3.0"
