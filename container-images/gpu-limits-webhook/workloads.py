import logging
import pydantic

from dataclasses import dataclass
from typing import Any, Callable

from models import BaseModel, Metadata, Pod, PodSpec, ReplicationController
from exc import DecodeError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workload:
    """How to find the pod spec inside an object of one kind."""

    model: type[BaseModel]
    containers_path: str
    pod_spec: Callable[[Any], PodSpec]


WORKLOADS = {
    "Pod": Workload(
        model=Pod,
        containers_path="/spec/containers",
        pod_spec=lambda obj: obj.spec,
    ),
    # The template metadata is ignored: ownership and namespace are taken
    # from the controller itself.
    "ReplicationController": Workload(
        model=ReplicationController,
        containers_path="/spec/template/spec/containers",
        pod_spec=lambda obj: obj.spec.template.spec,
    ),
}


def decode_workload(kind: str, raw: dict[str, Any] | None) -> tuple[Metadata, PodSpec]:
    """Parse `raw` as an object of `kind` and return its metadata and pod spec.

    Raises DecodeError if the object does not match the schema of its kind,
    and KeyError if `kind` is not a supported workload.
    """
    workload = WORKLOADS[kind]

    if raw is None:
        raise DecodeError(f"admission request for {kind} contains no object")

    try:
        obj = workload.model.model_validate(raw)
    except pydantic.ValidationError as err:
        LOG.error("could not decode %s: %s", kind, err)
        raise DecodeError(f"could not decode {kind}: {err}") from err

    return obj.metadata, workload.pod_spec(obj)
