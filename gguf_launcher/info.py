"""System and model status reporting."""

import platform
import subprocess
from typing import Dict

import psutil

from gguf_launcher.config import Settings

GB = 1024**3


def cpu_name() -> str:
    """Best-effort CPU brand string."""
    if platform.system() == "Darwin":
        try:
            out = subprocess.run(
                ["sysctl", "-n", "machdep.cpu.brand_string"], capture_output=True, text=True, timeout=5
            )
            if out.returncode == 0 and out.stdout.strip():
                return out.stdout.strip()
        except (OSError, subprocess.TimeoutExpired):
            pass
    return platform.processor() or platform.machine() or "Unknown"


def system_info() -> Dict[str, str]:
    mem = psutil.virtual_memory()
    return {
        "OS": f"{platform.system()} {platform.release()}",
        "Chip": cpu_name(),
        "RAM": f"{mem.total / GB:.0f}GB ({mem.available / GB:.0f}GB available)",
        "CPU cores": str(psutil.cpu_count(logical=True)),
    }


def recommended_ram_limit() -> str:
    """Two thirds of physical RAM, the suggested RAM_LIMIT."""
    total_gb = psutil.virtual_memory().total // GB
    return f"{total_gb * 2 // 3}G"


def config_summary(settings: Settings) -> Dict[str, str]:
    return {
        "MODEL_QUANT": settings.model_quant,
        "RAM_LIMIT": settings.ram_limit,
        "GPU_LAYERS": str(settings.gpu_layers),
        "CONTEXT_SIZE": str(settings.context_size),
        "THREADS": settings.threads_label,
        "USE_MMAP": str(settings.use_mmap).lower(),
        "USE_MLOCK": str(settings.use_mlock).lower(),
        "SERVER": f"{settings.server_host}:{settings.server_port}",
    }
