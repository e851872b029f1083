import base64
from typing import Annotated, Any, Literal
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    RootModel,
    model_validator,
    field_validator,
)
from enum import StrEnum

from kubernetes.utils import parse_quantity


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"


class PatchAction(BaseModel):
    op: PatchOp
    path: str
    value: Any


# https://jsonpatch.com/
Patch = RootModel[list[PatchAction]]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class AdmissionReviewStatus(BaseModel):
    message: str
    code: int | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    allowed: bool
    status: AdmissionReviewStatus | None = None
    uid: str
    patchType: PatchType | None = None
    patch: str | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(val.model_dump_json().encode())
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")
        if self.patchType and not self.patch:
            raise ValueError(f"patchType is {self.patchType} but there is no patch")
        if self.patch and not self.allowed:
            raise ValueError("a denied request cannot carry a patch")
        if self.patch and self.status:
            raise ValueError("a patched response cannot carry a status message")

        return self


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#groupversionkind-v1-meta
class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    uid: str
    kind: GroupVersionKind | None = None
    name: str | None = None
    namespace: str | None = None
    operation: Operation = Operation.CREATE
    object: dict[str, Any] | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    apiVersion: Literal[ApiVersion.V1] = ApiVersion.V1
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    @model_validator(mode="after")
    def validate_model(self):
        if not (self.request or self.response):
            raise ValueError("must contain a request or a response")

        return self


def validate_quantity(val):
    # parse_quantity raises ValueError for anything that is not a valid
    # Kubernetes quantity, which pydantic reports as a validation error.
    if not parse_quantity(val).is_finite():
        raise ValueError(f"{val} is not a valid quantity")
    return val


# https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/quantity/
Quantity = Annotated[str | int | float, AfterValidator(validate_quantity)]


class OwnerReference(BaseModel):
    model_config = ConfigDict(extra="allow")

    apiVersion: str | None = None
    kind: str
    name: str
    uid: str | None = None


class Metadata(BaseModel):
    name: str | None = None
    namespace: str | None = None
    labels: dict[str, str] = {}
    annotations: dict[str, str] = {}
    ownerReferences: list[OwnerReference] = []


# Containers are sent back in full when we patch them, so any field we do
# not model explicitly must survive the round trip.
class ResourceRequirements(BaseModel):
    model_config = ConfigDict(extra="allow")

    limits: dict[str, Quantity] | None = None
    requests: dict[str, Quantity] | None = None


class Container(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    resources: ResourceRequirements | None = None


class PodSpec(BaseModel):
    containers: list[Container]


class Pod(BaseModel):
    metadata: Metadata = Metadata()
    spec: PodSpec


class PodTemplateSpec(BaseModel):
    metadata: Metadata = Metadata()
    spec: PodSpec


class ReplicationControllerSpec(BaseModel):
    template: PodTemplateSpec


class ReplicationController(BaseModel):
    metadata: Metadata = Metadata()
    spec: ReplicationControllerSpec


class Settings(BaseModel):
    """Runtime configuration, built once by create_app and never modified."""

    model_config = ConfigDict(frozen=True)

    gpu_resource_name: str = "nvidia.com/gpu"
    cpu_resource_name: str = "cpu"
    memory_resource_name: str = "memory"
    ignored_namespaces: tuple[str, ...] = ("kube-system", "kube-public", "default")
    annotation_key: str = "desc"
    annotation_value: str = "transparent mode namespace"
    lookup_timeout: float | None = 10
