import logging

from decimal import Decimal

from kubernetes.utils import parse_quantity

from models import Container, Patch, PatchAction, PatchOp, Settings
from exc import (
    GpuRangeError,
    LimitExceededError,
    MissingLimitsError,
    QuantityParseError,
)

LOG = logging.getLogger(__name__)

MIN_GPUS = 1
MAX_GPUS = 8
CPU_PER_GPU = 4
# Memory is handled in mebibytes.
MEMORY_PER_GPU = 90 * 1024
MEBIBYTE = 1024 * 1024


def format_decimal(val: Decimal) -> str:
    return f"{val.normalize():f}"


def format_quantity(name: str, val: Decimal, suffix: str = "") -> str:
    """Encode `val` as a quantity string and make sure Kubernetes can read it back."""
    text = format_decimal(val) + suffix
    try:
        parsed = parse_quantity(text)
    except ValueError as err:
        raise QuantityParseError(f"Cannot parse value of {name}: {text}") from err

    if not parsed.is_finite():
        raise QuantityParseError(f"Cannot parse value of {name}: {text}")

    return text


def limits_validate(
    container: Container, cpu_key: str, memory_key: str, gpu_key: str
) -> bool:
    """Check the limits of a single container against its GPU limit.

    The GPU limit must be between 1 and 8. CPU and memory limits may not exceed
    4 cores and 90Gi per GPU; a missing CPU or memory limit is set to that
    ceiling. Returns True if the container limits were modified.
    """

    if container.resources is None or container.resources.limits is None:
        raise MissingLimitsError(
            f"containers[{container.name}].resources.limits is required"
        )

    limits = container.resources.limits

    gpus = parse_quantity(limits.get(gpu_key, 0))
    cpu_cap = gpus * CPU_PER_GPU
    memory_cap = gpus * MEMORY_PER_GPU

    if not MIN_GPUS <= gpus <= MAX_GPUS:
        raise GpuRangeError(
            f"{gpu_key} exceeds the range from {MIN_GPUS} to {MAX_GPUS}"
        )

    mutated = False

    if cpu_key in limits:
        cpu = parse_quantity(limits[cpu_key])
        if cpu > cpu_cap:
            raise LimitExceededError(
                f"{cpu_key} exceeds the limit of {format_decimal(cpu_cap)}"
            )
    else:
        limits[cpu_key] = format_quantity(cpu_key, cpu_cap)
        mutated = True

    if memory_key in limits:
        memory = parse_quantity(limits[memory_key]) / MEBIBYTE
        if memory > memory_cap:
            raise LimitExceededError(
                f"{memory_key} exceeds the limit of {format_decimal(memory_cap)}Mi"
            )
    else:
        limits[memory_key] = format_quantity(memory_key, memory_cap, "Mi")
        mutated = True

    LOG.info("resource limits in container %s: %s", container.name, limits)
    return mutated


def build_patch(
    containers: list[Container], mutated: list[bool], path: str
) -> Patch | None:
    """Replace the whole container list at `path` if any container changed."""

    if not any(mutated):
        return None

    return Patch(
        [
            PatchAction(
                op=PatchOp.REPLACE,
                path=path,
                value=[
                    container.model_dump(exclude_none=True) for container in containers
                ],
            )
        ]
    )


def validate_containers(
    containers: list[Container], path: str, settings: Settings
) -> Patch | None:
    # Stop at the first container that violates the policy.
    mutated = [
        limits_validate(
            container,
            settings.cpu_resource_name,
            settings.memory_resource_name,
            settings.gpu_resource_name,
        )
        for container in containers
    ]

    return build_patch(containers, mutated, path)
