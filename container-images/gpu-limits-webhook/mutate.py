import functools
import logging
import sys

import pydantic

from flask import Flask, request, jsonify, current_app, abort

from models import (
    BaseModel,
    AdmissionRequest,
    AdmissionReview,
    AdmissionResponse,
    AdmissionReviewStatus,
    Metadata,
    PatchType,
    PodSpec,
    Settings,
)

from providers import KubernetesProvider, Provider
from exc import ApplicationError, NamespaceLookupError
from policy import validate_containers
from workloads import WORKLOADS, decode_workload

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class DEFAULTS:
    GPU_RESOURCE_NAME = "nvidia.com/gpu"
    CPU_RESOURCE_NAME = "cpu"
    MEMORY_RESOURCE_NAME = "memory"
    IGNORED_NAMESPACES = "kube-system,kube-public,default"
    ANNOTATION_KEY = "desc"
    ANNOTATION_VALUE = "transparent mode namespace"
    LOOKUP_TIMEOUT = 10
    PROVIDER = KubernetesProvider


def jsonresponse():
    """Transforms the response from a view function into a JSON object."""

    def _outer(func):
        @functools.wraps(func)
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, BaseModel):
                return jsonify(res.model_dump(exclude_none=True))
            else:
                return jsonify(res)

        return _inner

    return _outer


def validation_required(
    provider: Provider, metadata: Metadata, settings: Settings
) -> bool:
    """Decide whether the policy applies to an object.

    Objects owned by another resource were already checked when their owner
    was admitted. Objects in the ignored namespaces are never checked. For
    everything else the namespace has to opt in with an annotation.
    """

    if metadata.ownerReferences:
        owner = metadata.ownerReferences[0]
        LOG.info(
            "Skip validation for %s for it's a child object of %s/%s",
            metadata.name,
            owner.kind,
            owner.name,
        )
        return False

    if metadata.namespace in settings.ignored_namespaces:
        LOG.info(
            "Skip validation for %s for it's in special namespace: %s",
            metadata.name,
            metadata.namespace,
        )
        return False

    # Lookup failures propagate as NamespaceLookupError.
    annotations = provider.namespace_annotations(metadata.namespace)
    if settings.annotation_value in annotations.get(settings.annotation_key, ""):
        return True

    LOG.info(
        "Skip validation for %s for there is no annotation %s='.* %s' in namespace %s",
        metadata.name,
        settings.annotation_key,
        settings.annotation_value,
        metadata.namespace,
    )
    return False


def get_pod_spec(
    provider: Provider, req: AdmissionRequest, settings: Settings
) -> PodSpec | None:
    """Return the pod spec of the admitted object, or None if it should not be checked."""

    kind = req.kind.kind if req.kind else None
    if kind not in WORKLOADS:
        return None

    metadata, spec = decode_workload(kind, req.object)

    # The object may not carry its namespace yet when it is being created.
    if not metadata.namespace:
        metadata = metadata.model_copy(update={"namespace": req.namespace})

    LOG.info(
        "AdmissionReview for Kind=%s Namespace=%s Name=%s",
        kind,
        metadata.namespace,
        metadata.name,
    )

    if not validation_required(provider, metadata, settings):
        return None

    return spec


def deny(uid: str, message: str, code: int) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid,
        allowed=False,
        status=AdmissionReviewStatus(message=message, code=code),
    )


def review(
    provider: Provider, req: AdmissionRequest, settings: Settings
) -> AdmissionResponse:
    """Compute the admission decision for a single request."""

    try:
        spec = get_pod_spec(provider, req, settings)
        if spec is None:
            return AdmissionResponse(uid=req.uid, allowed=True)

        patch = validate_containers(
            spec.containers, WORKLOADS[req.kind.kind].containers_path, settings
        )
    except NamespaceLookupError as err:
        LOG.error("Namespace lookup fails: %s", err)
        return deny(req.uid, f"internal error: {err}", err.code)
    except ApplicationError as err:
        LOG.error("Validation fails: %s", err)
        return deny(req.uid, str(err), err.code)

    if patch is None:
        return AdmissionResponse(uid=req.uid, allowed=True)

    return AdmissionResponse(
        uid=req.uid,
        allowed=True,
        patchType=PatchType.JSONPatch,
        patch=patch,
    )


@jsonresponse()
def mutate_workload():
    body = AdmissionReview(**request.get_json())
    if body.request is None:
        abort(400, "AdmissionReview contains no request")

    return AdmissionReview(
        response=review(current_app.provider, body.request, current_app.settings)
    )


def handle_validationerror(err):
    return str(err), 400, {"content-type": "text/plain"}


def handle_applicationerror(err):
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    Configuration comes from DEFAULTS, then from GPULIMITS_* environment
    variables, then from keyword arguments. The result is frozen into a
    Settings object shared by all requests.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("GPULIMITS")
    if config:
        app.config.update(config)

    if not app.config.get("GPU_RESOURCE_NAME"):
        LOG.error("Missing GPU resource name configuration")
        sys.exit(1)

    ignored_namespaces = app.config["IGNORED_NAMESPACES"]
    if isinstance(ignored_namespaces, str):
        ignored_namespaces = [
            ns.strip() for ns in ignored_namespaces.split(",") if ns.strip()
        ]

    app.settings = Settings(
        gpu_resource_name=app.config["GPU_RESOURCE_NAME"],
        cpu_resource_name=app.config["CPU_RESOURCE_NAME"],
        memory_resource_name=app.config["MEMORY_RESOURCE_NAME"],
        ignored_namespaces=tuple(ignored_namespaces),
        annotation_key=app.config["ANNOTATION_KEY"],
        annotation_value=app.config["ANNOTATION_VALUE"],
        lookup_timeout=app.config["LOOKUP_TIMEOUT"],
    )
    LOG.info("Using settings: %s", app.settings)

    app.provider = app.config["PROVIDER"](
        request_timeout=app.settings.lookup_timeout
    )

    app.errorhandler(pydantic.ValidationError)(handle_validationerror)
    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule("/mutate", view_func=mutate_workload, methods=["POST"])
    app.add_url_rule(
        "/", endpoint="root", view_func=mutate_workload, methods=["POST"]
    )

    return app
