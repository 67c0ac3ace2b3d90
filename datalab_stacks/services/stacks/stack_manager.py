"""
Stack Manager

The orchestration core. Turns stack requests into ordered batches of
orchestrator calls and keeps them in step with stored metadata.

Operations exposed to the request layer, each `(user, params)`:
- create_stack
- update_stack
- restart_stack
- scale_down_stack / scale_up_stack
- delete_stack

Every operation converts failures into StackError subclasses whose message
names the action, the stack type and the stack name. No raw transport error
escapes this module.
"""

import functools
import logging
from typing import Any, List, Optional

from kubernetes.client.rest import ApiException
from pydantic import BaseModel, ValidationError

from ...errors import (
    AuthorizationError,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    OrchestratorError,
    PolicyViolationError,
    StackError,
)
from ...models import (
    CreateStackResult,
    StackCategory,
    StackDeploymentSummary,
    StackRecord,
    StackReference,
    StackStatus,
    StackUpdate,
    UpdateStackResult,
    User,
    Visibility,
    WorkspaceSpec,
)
from ...utils import resource_naming as naming
from ..orchestration.kubernetes.client import KubernetesClient, remote_message, to_document
from ..orchestration.kubernetes.deployment_generator import get_image
from .builders import StackBuilder
from .cluster_manager import gather_all
from .context import OrchestrationContext
from .definitions import get_definition, mounts_assets
from .repositories import CentralAssetRepository, SharingHandler, StackRepository
from .scaling import restart_deployment, scale_deployment

logger = logging.getLogger(__name__)

ASSETS_VOLUME = "assets"


def _describe(params: Any):
    """Best-effort (type, name) of a request, for error messages."""
    if isinstance(params, dict):
        return params.get("type") or "stack", params.get("name")
    return getattr(params, "type", None) or "stack", getattr(params, "name", None)


def stack_operation(verb: str):
    """
    Wrap an operation so every failure is a StackError naming what was attempted.

    Args:
        verb: Present participle used in messages ("creating", "deleting", ...)
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, user, params, *args, **kwargs):
            stack_type, name = _describe(params)
            try:
                return await func(self, user, params, *args, **kwargs)
            except StackError as e:
                logger.warning(f"[STACKS] {verb} {stack_type} {name} failed: {e.message}")
                raise e.with_context(verb, str(stack_type), name) from e
            except ValidationError as e:
                raise InvalidRequestError(str(e)).with_context(verb, str(stack_type), name) from e
            except ApiException as e:
                logger.error(f"[STACKS] ❌ Kubernetes API error {verb} {stack_type} {name}", exc_info=True)
                message = remote_message(e)
                raise OrchestratorError(
                    message, status=e.status, remote_message=message
                ).with_context(verb, str(stack_type), name) from e
            except Exception as e:
                logger.error(f"[STACKS] ❌ Unexpected error {verb} {stack_type} {name}: {e}", exc_info=True)
                raise OrchestratorError(str(e)).with_context(verb, str(stack_type), name) from e

        return wrapper

    return decorator


def _parse(model: type, params: Any) -> BaseModel:
    if isinstance(params, model):
        return params
    return model.model_validate(params)


class StackManager:
    """
    Creates, updates, scales, restarts and deletes stacks.

    Holds no state between calls beyond its collaborators, so operations on
    different stacks can run concurrently.
    """

    def __init__(
        self,
        k8s_client: KubernetesClient,
        context: OrchestrationContext,
        stack_repository: StackRepository,
        asset_repository: CentralAssetRepository,
        sharing_handler: SharingHandler,
    ):
        self.k8s = k8s_client
        self.context = context
        self.stacks = stack_repository
        self.assets = asset_repository
        self.sharing = sharing_handler
        self.builder = StackBuilder(k8s_client, context)

    # =========================================================================
    # CREATE / UPDATE
    # =========================================================================

    @stack_operation("creating")
    async def create_stack(self, user: User, params: Any) -> CreateStackResult:
        """
        Create a stack's metadata and orchestrator resources.

        Resources that were created before a failure are left in place; calling
        again with the same request converges on the complete stack.

        Raises:
            InvalidRequestError: Request does not validate
            PolicyViolationError: Notebook requested as public
            ImageNotFoundError: Unknown version for the type
            ConflictError: A stack with this name already exists in the project
            OrchestratorError: A Kubernetes call failed
        """
        spec: WorkspaceSpec = _parse(WorkspaceSpec, params)

        if spec.type.category == StackCategory.ANALYSIS and Visibility.PUBLIC in (spec.shared, spec.visible):
            raise PolicyViolationError("Notebooks cannot be made public")

        definition = get_definition(spec.type)
        stack_params = definition.build_params(spec)
        get_image(self.context.image_config, spec.type, spec.version)
        if definition.validate:
            definition.validate(stack_params, self.context)

        if await self.stacks.get_one_by_name(spec.project_key, spec.name) is not None:
            raise ConflictError(f"Stack '{spec.name}' already exists in project '{spec.project_key}'")

        asset_update_error = await self._touch_assets(spec.asset_ids)

        await self.stacks.create_or_update(spec.project_key, user, StackRecord(
            project_key=spec.project_key,
            name=spec.name,
            type=spec.type,
            display_name=spec.display_name,
            description=spec.description,
            shared=spec.shared,
            asset_ids=spec.asset_ids,
            status=StackStatus.REQUESTED,
        ))

        logger.info(f"[STACKS] Creating {spec.type} stack {spec.name} in {stack_params.namespace}")
        await definition.create(self.builder, stack_params)

        if spec.asset_ids:
            await self.mount_assets_on_stack(spec, spec.asset_ids)

        logger.info(f"[STACKS] ✅ Created {spec.type} stack {spec.name} in {stack_params.namespace}")
        return CreateStackResult(
            project_key=spec.project_key,
            name=spec.name,
            type=spec.type,
            asset_update_error=asset_update_error,
        )

    @stack_operation("updating")
    async def update_stack(self, user: User, params: Any) -> UpdateStackResult:
        """
        Update the user-updatable fields of a stack.

        A failure to mark newly linked assets as used does not stop the update;
        it is returned in `asset_update_error`.

        Raises:
            NotFoundError: No such stack
            PolicyViolationError: Notebook made public (nothing is changed)
        """
        update: StackUpdate = _parse(StackUpdate, params)

        existing = await self.stacks.get_one_by_name(update.project_key, update.name)
        if existing is None:
            raise NotFoundError(f"Stack '{update.name}' not found in project '{update.project_key}'")

        if update.shared == Visibility.PUBLIC and existing.category == StackCategory.ANALYSIS:
            raise PolicyViolationError("Notebooks cannot be made public")

        new_asset_ids = []
        asset_update_error = None
        if update.asset_ids is not None:
            new_asset_ids = [asset_id for asset_id in update.asset_ids if asset_id not in existing.asset_ids]
            if new_asset_ids:
                asset_update_error = await self._touch_assets(new_asset_ids)

        if update.shared is not None:
            await self.sharing.handle_shared_change(update, existing, update.shared, user.token)

        if new_asset_ids:
            await self.mount_assets_on_stack(existing, new_asset_ids)

        stack = await self.stacks.update(update.project_key, user, update.name, update.updated_details())
        return UpdateStackResult(stack=stack, asset_update_error=asset_update_error)

    async def _touch_assets(self, asset_ids: List[str]) -> Optional[str]:
        """Mark assets as just used. Failure is reported, not raised."""
        if not asset_ids:
            return None
        try:
            await self.assets.set_last_added_date_to_now(asset_ids)
        except Exception as e:
            logger.warning(f"[STACKS] Unable to update last added date of assets {asset_ids}: {e}")
            return f"Unable to update assets {', '.join(asset_ids)}: {e}"
        return None

    # =========================================================================
    # ASSETS
    # =========================================================================

    async def mount_assets_on_stack(self, stack: Any, asset_ids: List[str]) -> None:
        """
        Mount linked assets read-only into a notebook or site stack.

        Each asset is mounted from the shared assets claim at
        <assets_mount_root>/<asset name>-<version>. Assets already mounted are
        left alone. Other stack types are ignored.
        """
        if not mounts_assets(stack.type):
            return

        assets = await self.assets.get_assets_by_ids(asset_ids)
        if not assets:
            return

        name = naming.deployment_name(stack.name, stack.type)
        namespace = naming.project_namespace(stack.project_key)
        deployment = await self.k8s.deployments.get(name, namespace)
        if deployment is None:
            raise NotFoundError(f"Deployment '{name}' not found in '{namespace}'")

        pod_spec = to_document(deployment)["spec"]["template"]["spec"]
        volumes = pod_spec.get("volumes") or []
        containers = pod_spec["containers"]
        mounts = containers[0].setdefault("volumeMounts", [])
        mounted_paths = {mount["mountPath"] for mount in mounts}

        added = 0
        for asset in assets:
            mount_path = f"{self.context.assets_mount_root}/{asset.name}-{asset.version}"
            if mount_path in mounted_paths:
                continue
            mount = {"name": ASSETS_VOLUME, "mountPath": mount_path, "readOnly": True}
            if asset.file_location:
                mount["subPath"] = asset.file_location
            mounts.append(mount)
            mounted_paths.add(mount_path)
            added += 1

        if not added:
            return

        if not any(volume["name"] == ASSETS_VOLUME for volume in volumes):
            volumes.append({
                "name": ASSETS_VOLUME,
                "persistentVolumeClaim": {"claimName": self.context.assets_volume_claim},
            })

        # Merge patches replace lists wholesale, so send the complete lists
        await self.k8s.deployments.merge_patch(name, namespace, {
            "spec": {"template": {"spec": {"volumes": volumes, "containers": containers}}}
        })
        logger.info(f"[STACKS] Mounted {added} asset(s) on {namespace}/{name}")

    # =========================================================================
    # RESTART / SCALE
    # =========================================================================

    async def _require(self, check, reference: StackReference, user: User, action: str) -> None:
        if not await check(reference.project_key, user, reference.name):
            raise AuthorizationError(f"User does not have permission to {action} this stack")

    def _deployments(self, reference: StackReference) -> List[str]:
        return get_definition(reference.type).deployments(reference.name, reference.type)

    @stack_operation("restarting")
    async def restart_stack(self, user: User, params: Any) -> List[str]:
        """
        Restart every deployment of a stack and wait until each is back up.

        Returns:
            Names of the restarted deployments

        Raises:
            AuthorizationError: User may not restart the stack (nothing is changed)
            ConvergenceTimeoutError: A deployment did not converge in time
        """
        reference: StackReference = _parse(StackReference, params)
        await self._require(self.stacks.user_can_restart_stack, reference, user, "restart")

        namespace = naming.project_namespace(reference.project_key)
        deployments = self._deployments(reference)
        await gather_all(*(
            restart_deployment(self.k8s.deployments, name, namespace, self.context.convergence)
            for name in deployments
        ))
        return deployments

    async def _scale(self, user: User, params: Any, replicas: int) -> StackReference:
        reference: StackReference = _parse(StackReference, params)
        await self._require(self.stacks.user_can_restart_stack, reference, user, "scale")

        namespace = naming.project_namespace(reference.project_key)
        for name in self._deployments(reference):
            await scale_deployment(self.k8s.deployments, name, namespace, replicas)
        return reference

    @stack_operation("scaling down")
    async def scale_down_stack(self, user: User, params: Any) -> None:
        """Scale a stack to zero replicas and reset its last access time."""
        reference = await self._scale(user, params, 0)
        await self.stacks.reset_access_time(reference.project_key, user, reference.name)

    @stack_operation("scaling up")
    async def scale_up_stack(self, user: User, params: Any) -> None:
        """Scale a stack to one replica and record it as accessed now."""
        reference = await self._scale(user, params, 1)
        await self.stacks.update_access_time_to_now(reference.project_key, user, reference.name)

    # =========================================================================
    # DELETE / LIST
    # =========================================================================

    @stack_operation("deleting")
    async def delete_stack(self, user: User, params: Any) -> None:
        """
        Delete a stack's orchestrator resources, then its metadata.

        Resources already gone are skipped.

        Raises:
            AuthorizationError: User may not delete the stack (nothing is changed)
        """
        reference: StackReference = _parse(StackReference, params)
        await self._require(self.stacks.user_can_delete_stack, reference, user, "delete")

        namespace = naming.project_namespace(reference.project_key)
        for kind, name in get_definition(reference.type).resources(reference.name, reference.type):
            await self.k8s.api_for(kind).delete(name, namespace)

        await self.stacks.delete(reference.project_key, user, reference.name)
        logger.info(f"[STACKS] ✅ Deleted {reference.type} stack {reference.name} from {namespace}")

    async def list_stack_deployments(self) -> List[StackDeploymentSummary]:
        try:
            return await self.k8s.deployments.list_stack_deployments()
        except StackError as e:
            raise e.with_context("listing", "deployments", "all") from e
