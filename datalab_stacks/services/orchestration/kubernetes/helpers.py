"""
Kubernetes Manifest Templates for Stacks

Each template is a pure function from a context (keyword arguments) to a
kubernetes model object. Templates are addressed by an enum member and
rendered with generate_manifest(context, template), so callers never import
template functions directly or inspect their internals.

Template families:
- Deployments: notebooks, IDEs, sites, object storage, cluster scheduler/worker
- Services: one per exposed deployment, plus the Spark driver headless service
- ConfigMaps: notebook-side Spark/Dask/Jupyter settings, RStudio settings
- NetworkPolicies: restrict access to cluster schedulers
- AutoScalers: horizontal scaling of cluster workers
"""

import logging
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

from kubernetes import client

logger = logging.getLogger(__name__)

DATA_MOUNT_PATH = "/data"


class DeploymentTemplates(str, Enum):
    JUPYTER_DEPLOYMENT = "jupyter-deployment"
    ZEPPELIN_DEPLOYMENT = "zeppelin-deployment"
    RSTUDIO_DEPLOYMENT = "rstudio-deployment"
    RSHINY_DEPLOYMENT = "rshiny-deployment"
    NBVIEWER_DEPLOYMENT = "nbviewer-deployment"
    PANEL_DEPLOYMENT = "panel-deployment"
    VOILA_DEPLOYMENT = "voila-deployment"
    MINIO_DEPLOYMENT = "minio-deployment"
    DASK_SCHEDULER_DEPLOYMENT = "dask-scheduler-deployment"
    DASK_WORKER_DEPLOYMENT = "dask-worker-deployment"
    SPARK_SCHEDULER_DEPLOYMENT = "spark-scheduler-deployment"
    SPARK_WORKER_DEPLOYMENT = "spark-worker-deployment"


class ServiceTemplates(str, Enum):
    JUPYTER_SERVICE = "jupyter-service"
    ZEPPELIN_SERVICE = "zeppelin-service"
    RSTUDIO_SERVICE = "rstudio-service"
    RSHINY_SERVICE = "rshiny-service"
    NBVIEWER_SERVICE = "nbviewer-service"
    PANEL_SERVICE = "panel-service"
    VOILA_SERVICE = "voila-service"
    MINIO_SERVICE = "minio-service"
    SPARK_DRIVER_HEADLESS_SERVICE = "spark-driver-headless-service"
    DASK_SCHEDULER_SERVICE = "dask-scheduler-service"
    SPARK_SCHEDULER_SERVICE = "spark-scheduler-service"


class ConfigMapTemplates(str, Enum):
    PYSPARK_CONFIGMAP = "pyspark-configmap"
    DASK_CONFIGMAP = "dask-configmap"
    JUPYTER_CONFIGMAP = "jupyter-configmap"
    RSTUDIO_CONFIGMAP = "rstudio-configmap"


class NetworkPolicyTemplates(str, Enum):
    DASK_SCHEDULER_NETWORK_POLICY = "dask-scheduler-network-policy"
    SPARK_SCHEDULER_NETWORK_POLICY = "spark-scheduler-network-policy"


class AutoScalerTemplates(str, Enum):
    AUTO_SCALER = "auto-scaler"


# Ports each workload listens on
PORTS = {
    "jupyter": 8888,
    "zeppelin": 8080,
    "rstudio": 8787,
    "rshiny": 3838,
    "nbviewer": 8080,
    "panel": 5006,
    "voila": 8866,
    "minio": 9000,
    "connect": 8000,
    "dask-scheduler": 8786,
    "dask-dashboard": 8787,
    "spark-master": 7077,
    "spark-ui": 8080,
    "spark-driver": 7078,
    "spark-blockmanager": 7079,
}


# =============================================================================
# Building blocks
# =============================================================================

def _resources(memory: Optional[str], cpu: Optional[Any]) -> Optional[client.V1ResourceRequirements]:
    if not memory and not cpu:
        return None
    limits = {}
    if memory:
        limits["memory"] = memory
    if cpu:
        limits["cpu"] = str(cpu)
    return client.V1ResourceRequirements(requests=dict(limits), limits=limits)


def _data_volume(volume_mount: Optional[str]) -> List[client.V1Volume]:
    if not volume_mount:
        return []
    return [
        client.V1Volume(
            name="persistentfsvol",
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                claim_name=f"{volume_mount}-claim"
            )
        )
    ]


def _data_volume_mount(volume_mount: Optional[str]) -> List[client.V1VolumeMount]:
    if not volume_mount:
        return []
    return [client.V1VolumeMount(name="persistentfsvol", mount_path=DATA_MOUNT_PATH)]


def _config_map_volume(volume_name: str, config_map_name: str) -> client.V1Volume:
    return client.V1Volume(
        name=volume_name,
        config_map=client.V1ConfigMapVolumeSource(name=config_map_name)
    )


def _connect_container(connect_image: str, target_port: int, image_pull_policy: str) -> client.V1Container:
    """Sidecar that authenticates requests before proxying them to the workload."""
    return client.V1Container(
        name="connect",
        image=connect_image,
        image_pull_policy=image_pull_policy,
        ports=[client.V1ContainerPort(container_port=PORTS["connect"], name="connect")],
        env=[client.V1EnvVar(name="TARGET_PORT", value=str(target_port))],
    )


def _deployment(
    name: str,
    labels: Dict[str, str],
    containers: List[client.V1Container],
    volumes: Optional[List[client.V1Volume]] = None,
    service_account: Optional[str] = None,
    replicas: int = 1
) -> client.V1Deployment:
    pod_spec = client.V1PodSpec(
        containers=containers,
        volumes=volumes or None,
    )
    if service_account:
        pod_spec.service_account_name = service_account

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=name, labels=labels),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels={"name": labels["name"]}),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=pod_spec
            )
        )
    )


def _service(
    name: str,
    pod_label: str,
    ports: List[client.V1ServicePort],
    headless: bool = False
) -> client.V1Service:
    spec = client.V1ServiceSpec(
        selector={"name": pod_label},
        ports=ports,
        type="ClusterIP"
    )
    if headless:
        spec.cluster_ip = "None"

    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=name),
        spec=spec
    )


def _http_port(port: int, name: str = "http") -> client.V1ServicePort:
    return client.V1ServicePort(name=name, port=80, target_port=port, protocol="TCP")


# =============================================================================
# Deployment templates
# =============================================================================

def jupyter_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    domain: str,
    base_path: str,
    service_account: str,
    py_spark_config_map: str,
    dask_config_map: str,
    jupyter_config_map: str,
    start_cmd: str,
    collaborative: bool,
    volume_mount: Optional[str] = None,
    grant_sudo: str = "yes",
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    """
    Jupyter Notebook / JupyterLab deployment.

    The Spark, Dask and Jupyter config maps are mounted into the pod, so they
    must exist before this deployment is created.
    """
    args = ["start-notebook.sh", f"--NotebookApp.base_url={base_path}"]
    if collaborative:
        args.append("--collaborative")

    container = client.V1Container(
        name="jupyter",
        image=image,
        image_pull_policy=image_pull_policy,
        args=args,
        ports=[client.V1ContainerPort(container_port=PORTS["jupyter"], name="http")],
        env=[
            client.V1EnvVar(name="DOCKER_STACKS_JUPYTER_CMD", value=start_cmd),
            client.V1EnvVar(name="GRANT_SUDO", value=grant_sudo),
            client.V1EnvVar(name="JUPYTER_DOMAIN", value=domain),
        ],
        volume_mounts=_data_volume_mount(volume_mount) + [
            client.V1VolumeMount(name="pyspark-config", mount_path="/usr/local/spark/conf"),
            client.V1VolumeMount(name="dask-config", mount_path="/etc/dask"),
            client.V1VolumeMount(name="jupyter-config", mount_path="/etc/jupyter"),
        ],
    )
    volumes = _data_volume(volume_mount) + [
        _config_map_volume("pyspark-config", py_spark_config_map),
        _config_map_volume("dask-config", dask_config_map),
        _config_map_volume("jupyter-config", jupyter_config_map),
    ]
    return _deployment(name, labels, [container], volumes, service_account=service_account)


def zeppelin_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    connect_image: str,
    spark_master_address: str,
    shared_r_libs: str,
    volume_mount: Optional[str] = None,
    grant_sudo: bool = True,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    container = client.V1Container(
        name="zeppelin",
        image=image,
        image_pull_policy=image_pull_policy,
        ports=[client.V1ContainerPort(container_port=PORTS["zeppelin"], name="http")],
        env=[
            client.V1EnvVar(name="MASTER", value=spark_master_address),
            client.V1EnvVar(name="R_LIBS_SITE", value=shared_r_libs),
            client.V1EnvVar(name="GRANT_SUDO", value="yes" if grant_sudo else "no"),
        ],
        volume_mounts=_data_volume_mount(volume_mount),
    )
    return _deployment(
        name,
        labels,
        [container, _connect_container(connect_image, PORTS["zeppelin"], image_pull_policy)],
        _data_volume(volume_mount),
    )


def rstudio_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    connect_image: str,
    rstudio_config_map: str,
    volume_mount: Optional[str] = None,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    container = client.V1Container(
        name="rstudio",
        image=image,
        image_pull_policy=image_pull_policy,
        ports=[client.V1ContainerPort(container_port=PORTS["rstudio"], name="http")],
        volume_mounts=_data_volume_mount(volume_mount) + [
            client.V1VolumeMount(name="rstudio-config", mount_path="/etc/rstudio"),
        ],
    )
    volumes = _data_volume(volume_mount) + [_config_map_volume("rstudio-config", rstudio_config_map)]
    return _deployment(
        name,
        labels,
        [container, _connect_container(connect_image, PORTS["rstudio"], image_pull_policy)],
        volumes,
    )


# Command each site type runs, given the directory holding its executables
# ("" when they are on the PATH)
_SITE_COMMANDS: Dict[str, Callable[..., List[str]]] = {
    "rshiny": lambda bin_dir, source_path, filename, url: [
        f"{bin_dir}R", "-e", f"shiny::runApp('{source_path}', host='0.0.0.0', port={PORTS['rshiny']})",
    ],
    "nbviewer": lambda bin_dir, source_path, filename, url: [
        f"{bin_dir}python", "-m", "nbviewer", f"--port={PORTS['nbviewer']}",
        f"--localfiles={source_path}",
    ],
    "panel": lambda bin_dir, source_path, filename, url: [
        f"{bin_dir}panel", "serve", f"{source_path}/{filename}" if filename else source_path,
        "--address=0.0.0.0", f"--port={PORTS['panel']}", f"--allow-websocket-origin={url}",
    ],
    "voila": lambda bin_dir, source_path, filename, url: [
        f"{bin_dir}voila", f"{source_path}/{filename}" if filename else source_path,
        f"--port={PORTS['voila']}", "--no-browser", "--Voila.ip=0.0.0.0",
    ],
}


def site_deployment(
    site_type: str,
    name: str,
    labels: Dict[str, str],
    image: str,
    source_path: str,
    volume_mount: Optional[str] = None,
    conda_path: Optional[str] = None,
    filename: Optional[str] = None,
    url: str = "",
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    """Deployment serving published content from the project's storage."""
    bin_dir = f"{conda_path}/bin/" if conda_path else ""
    command = _SITE_COMMANDS[site_type](bin_dir, source_path, filename, url)
    port = PORTS[site_type]

    container = client.V1Container(
        name="web",
        image=image,
        image_pull_policy=image_pull_policy,
        command=command,
        working_dir=source_path,
        ports=[client.V1ContainerPort(container_port=port, name="http")],
        volume_mounts=_data_volume_mount(volume_mount),
        readiness_probe=client.V1Probe(
            tcp_socket=client.V1TCPSocketAction(port=port),
            initial_delay_seconds=5,
            period_seconds=10,
        ),
    )
    return _deployment(name, labels, [container], _data_volume(volume_mount))


def minio_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    connect_image: str,
    volume_name: str,
    domain: str,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    """Object-storage gateway over a project storage volume."""
    container = client.V1Container(
        name="minio",
        image=image,
        image_pull_policy=image_pull_policy,
        args=["server", "/mnt/data"],
        ports=[client.V1ContainerPort(container_port=PORTS["minio"], name="http")],
        env=[client.V1EnvVar(name="MINIO_DOMAIN", value=domain)],
        volume_mounts=[client.V1VolumeMount(name="miniovol", mount_path="/mnt/data")],
    )
    volumes = [
        client.V1Volume(
            name="miniovol",
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                claim_name=f"{volume_name}-claim"
            )
        )
    ]
    return _deployment(
        name,
        labels,
        [container, _connect_container(connect_image, PORTS["minio"], image_pull_policy)],
        volumes,
    )


def dask_scheduler_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    scheduler_path: str,
    cluster_name: str,
    scheduler_memory: str,
    scheduler_cpu: Any,
    volume_mount: Optional[str] = None,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    container = client.V1Container(
        name=f"{cluster_name}-scheduler",
        image=image,
        image_pull_policy=image_pull_policy,
        args=[
            scheduler_path,
            f"--port={PORTS['dask-scheduler']}",
            f"--dashboard-address=:{PORTS['dask-dashboard']}",
        ],
        ports=[
            client.V1ContainerPort(container_port=PORTS["dask-scheduler"], name="scheduler"),
            client.V1ContainerPort(container_port=PORTS["dask-dashboard"], name="dashboard"),
        ],
        resources=_resources(scheduler_memory, scheduler_cpu),
        volume_mounts=_data_volume_mount(volume_mount),
    )
    return _deployment(name, labels, [container], _data_volume(volume_mount))


def dask_worker_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    worker_path: str,
    scheduler_service_name: str,
    worker_memory: str,
    worker_cpu: Any,
    n_threads: int,
    death_timeout_sec: int,
    volume_mount: Optional[str] = None,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    """Dask workers locate the scheduler through its fixed service name."""
    container = client.V1Container(
        name="dask-worker",
        image=image,
        image_pull_policy=image_pull_policy,
        args=[
            worker_path,
            f"tcp://{scheduler_service_name}:{PORTS['dask-scheduler']}",
            f"--nthreads={n_threads}",
            f"--memory-limit={worker_memory}",
            f"--death-timeout={death_timeout_sec}",
        ],
        resources=_resources(worker_memory, worker_cpu),
        volume_mounts=_data_volume_mount(volume_mount),
    )
    return _deployment(name, labels, [container], _data_volume(volume_mount))


def spark_scheduler_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    cluster_name: str,
    scheduler_memory: str,
    scheduler_cpu: Any,
    volume_mount: Optional[str] = None,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    container = client.V1Container(
        name=f"{cluster_name}-scheduler",
        image=image,
        image_pull_policy=image_pull_policy,
        args=["/opt/spark/bin/spark-class", "org.apache.spark.deploy.master.Master"],
        ports=[
            client.V1ContainerPort(container_port=PORTS["spark-master"], name="master"),
            client.V1ContainerPort(container_port=PORTS["spark-ui"], name="webui"),
        ],
        resources=_resources(scheduler_memory, scheduler_cpu),
        volume_mounts=_data_volume_mount(volume_mount),
    )
    return _deployment(name, labels, [container], _data_volume(volume_mount))


def spark_worker_deployment(
    name: str,
    labels: Dict[str, str],
    image: str,
    scheduler_service_name: str,
    worker_memory: str,
    worker_cpu: Any,
    volume_mount: Optional[str] = None,
    image_pull_policy: str = "IfNotPresent",
    **_
) -> client.V1Deployment:
    container = client.V1Container(
        name="spark-worker",
        image=image,
        image_pull_policy=image_pull_policy,
        args=[
            "/opt/spark/bin/spark-class",
            "org.apache.spark.deploy.worker.Worker",
            f"spark://{scheduler_service_name}:{PORTS['spark-master']}",
        ],
        resources=_resources(worker_memory, worker_cpu),
        volume_mounts=_data_volume_mount(volume_mount),
    )
    return _deployment(name, labels, [container], _data_volume(volume_mount))


# =============================================================================
# Service templates
# =============================================================================

def http_service(port: int, name: str, pod_label: str, **_) -> client.V1Service:
    return _service(name, pod_label, [_http_port(port)])


def spark_driver_headless_service(name: str, pod_label: str, **_) -> client.V1Service:
    """Lets Spark executors call back into a notebook's driver."""
    return _service(
        name,
        pod_label,
        [
            client.V1ServicePort(name="driver", port=PORTS["spark-driver"], target_port=PORTS["spark-driver"]),
            client.V1ServicePort(
                name="blockmanager",
                port=PORTS["spark-blockmanager"],
                target_port=PORTS["spark-blockmanager"]
            ),
        ],
        headless=True,
    )


def dask_scheduler_service(name: str, scheduler_pod_label: str, **_) -> client.V1Service:
    return _service(
        name,
        scheduler_pod_label,
        [
            client.V1ServicePort(
                name="scheduler", port=PORTS["dask-scheduler"], target_port=PORTS["dask-scheduler"]
            ),
            client.V1ServicePort(name="dashboard", port=80, target_port=PORTS["dask-dashboard"]),
        ],
    )


def spark_scheduler_service(name: str, scheduler_pod_label: str, **_) -> client.V1Service:
    return _service(
        name,
        scheduler_pod_label,
        [
            client.V1ServicePort(name="master", port=PORTS["spark-master"], target_port=PORTS["spark-master"]),
            client.V1ServicePort(name="webui", port=80, target_port=PORTS["spark-ui"]),
        ],
    )


# =============================================================================
# ConfigMap templates
# =============================================================================

def _config_map(name: str, data: Dict[str, str]) -> client.V1ConfigMap:
    return client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=client.V1ObjectMeta(name=name),
        data=data
    )


def pyspark_config_map(
    config_map_name: str,
    spark_image: str,
    project_namespace: str,
    project_compute_namespace: str,
    spark_driver_headless_service_name: str,
    job_name: str,
    **_
) -> client.V1ConfigMap:
    spark_defaults = "\n".join([
        "spark.master k8s://https://kubernetes.default.svc",
        f"spark.app.name {job_name}",
        f"spark.kubernetes.container.image {spark_image}",
        f"spark.kubernetes.namespace {project_compute_namespace}",
        f"spark.driver.host {spark_driver_headless_service_name}.{project_namespace}.svc.cluster.local",
        f"spark.driver.port {PORTS['spark-driver']}",
        f"spark.blockManager.port {PORTS['spark-blockmanager']}",
    ])
    return _config_map(config_map_name, {"spark-defaults.conf": spark_defaults + "\n"})


def dask_config_map(
    config_map_name: str,
    dask_image: str,
    project_namespace: str,
    project_compute_namespace: str,
    **_
) -> client.V1ConfigMap:
    dask_config = "\n".join([
        "kubernetes:",
        f"  namespace: {project_compute_namespace}",
        "  worker-template:",
        "    spec:",
        "      containers:",
        f"        - image: {dask_image}",
        "          name: dask-worker",
        "distributed:",
        "  dashboard:",
        f"    link: /{project_namespace}/dask/{{port}}/status",
    ])
    return _config_map(config_map_name, {"dask.yaml": dask_config + "\n"})


def jupyter_config_map(config_map_name: str, **_) -> client.V1ConfigMap:
    jupyter_config = "\n".join([
        "c.NotebookApp.allow_origin = '*'",
        "c.NotebookApp.disable_check_xsrf = True",
        "c.NotebookApp.trust_xheaders = True",
    ])
    return _config_map(config_map_name, {"jupyter_notebook_config.py": jupyter_config + "\n"})


def rstudio_config_map(config_map_name: str, base_path: str, **_) -> client.V1ConfigMap:
    return _config_map(config_map_name, {
        "rserver.conf": f"www-root-path={base_path}\n",
        "rsession.conf": "session-timeout-minutes=0\n",
    })


# =============================================================================
# NetworkPolicy templates
# =============================================================================

def scheduler_network_policy(
    name: str,
    scheduler_pod_label: str,
    project_key: str,
    project_compute_namespace: str,
    ports: List[int],
    **_
) -> client.V1NetworkPolicy:
    """
    Restrict access to a cluster scheduler to the project's own pods.

    Allows ingress from:
    - pods labelled with the same project key in the scheduler's namespace
    - any pod in the project's compute namespace
    """
    return client.V1NetworkPolicy(
        api_version="networking.k8s.io/v1",
        kind="NetworkPolicy",
        metadata=client.V1ObjectMeta(name=name),
        spec=client.V1NetworkPolicySpec(
            pod_selector=client.V1LabelSelector(match_labels={"name": scheduler_pod_label}),
            policy_types=["Ingress"],
            ingress=[
                client.V1NetworkPolicyIngressRule(
                    _from=[
                        client.V1NetworkPolicyPeer(
                            pod_selector=client.V1LabelSelector(
                                match_labels={"datalab.io/project-key": project_key}
                            )
                        ),
                        client.V1NetworkPolicyPeer(
                            namespace_selector=client.V1LabelSelector(
                                match_labels={"kubernetes.io/metadata.name": project_compute_namespace}
                            )
                        ),
                    ],
                    ports=[client.V1NetworkPolicyPort(protocol="TCP", port=port) for port in ports]
                )
            ]
        )
    )


# =============================================================================
# AutoScaler template
# =============================================================================

def _utilization_metric(resource: str, percent: int) -> client.V2MetricSpec:
    return client.V2MetricSpec(
        type="Resource",
        resource=client.V2ResourceMetricSource(
            name=resource,
            target=client.V2MetricTarget(type="Utilization", average_utilization=percent)
        )
    )


def auto_scaler(
    name: str,
    scale_deployment_name: str,
    max_replicas: int,
    target_cpu_utilization: int,
    target_memory_utilization: int,
    scale_down_window_sec: int,
    min_replicas: int = 1,
    **_
) -> client.V2HorizontalPodAutoscaler:
    return client.V2HorizontalPodAutoscaler(
        api_version="autoscaling/v2",
        kind="HorizontalPodAutoscaler",
        metadata=client.V1ObjectMeta(name=name),
        spec=client.V2HorizontalPodAutoscalerSpec(
            scale_target_ref=client.V2CrossVersionObjectReference(
                api_version="apps/v1",
                kind="Deployment",
                name=scale_deployment_name
            ),
            min_replicas=min_replicas,
            max_replicas=max_replicas,
            metrics=[
                _utilization_metric("cpu", target_cpu_utilization),
                _utilization_metric("memory", target_memory_utilization),
            ],
            behavior=client.V2HorizontalPodAutoscalerBehavior(
                scale_down=client.V2HPAScalingRules(stabilization_window_seconds=scale_down_window_sec)
            )
        )
    )


# =============================================================================
# Rendering
# =============================================================================

TEMPLATES: Dict[Enum, Callable[..., Any]] = {
    DeploymentTemplates.JUPYTER_DEPLOYMENT: jupyter_deployment,
    DeploymentTemplates.ZEPPELIN_DEPLOYMENT: zeppelin_deployment,
    DeploymentTemplates.RSTUDIO_DEPLOYMENT: rstudio_deployment,
    DeploymentTemplates.RSHINY_DEPLOYMENT: partial(site_deployment, "rshiny"),
    DeploymentTemplates.NBVIEWER_DEPLOYMENT: partial(site_deployment, "nbviewer"),
    DeploymentTemplates.PANEL_DEPLOYMENT: partial(site_deployment, "panel"),
    DeploymentTemplates.VOILA_DEPLOYMENT: partial(site_deployment, "voila"),
    DeploymentTemplates.MINIO_DEPLOYMENT: minio_deployment,
    DeploymentTemplates.DASK_SCHEDULER_DEPLOYMENT: dask_scheduler_deployment,
    DeploymentTemplates.DASK_WORKER_DEPLOYMENT: dask_worker_deployment,
    DeploymentTemplates.SPARK_SCHEDULER_DEPLOYMENT: spark_scheduler_deployment,
    DeploymentTemplates.SPARK_WORKER_DEPLOYMENT: spark_worker_deployment,
    ServiceTemplates.JUPYTER_SERVICE: partial(http_service, PORTS["jupyter"]),
    ServiceTemplates.ZEPPELIN_SERVICE: partial(http_service, PORTS["connect"]),
    ServiceTemplates.RSTUDIO_SERVICE: partial(http_service, PORTS["connect"]),
    ServiceTemplates.RSHINY_SERVICE: partial(http_service, PORTS["rshiny"]),
    ServiceTemplates.NBVIEWER_SERVICE: partial(http_service, PORTS["nbviewer"]),
    ServiceTemplates.PANEL_SERVICE: partial(http_service, PORTS["panel"]),
    ServiceTemplates.VOILA_SERVICE: partial(http_service, PORTS["voila"]),
    ServiceTemplates.MINIO_SERVICE: partial(http_service, PORTS["connect"]),
    ServiceTemplates.SPARK_DRIVER_HEADLESS_SERVICE: spark_driver_headless_service,
    ServiceTemplates.DASK_SCHEDULER_SERVICE: dask_scheduler_service,
    ServiceTemplates.SPARK_SCHEDULER_SERVICE: spark_scheduler_service,
    ConfigMapTemplates.PYSPARK_CONFIGMAP: pyspark_config_map,
    ConfigMapTemplates.DASK_CONFIGMAP: dask_config_map,
    ConfigMapTemplates.JUPYTER_CONFIGMAP: jupyter_config_map,
    ConfigMapTemplates.RSTUDIO_CONFIGMAP: rstudio_config_map,
    NetworkPolicyTemplates.DASK_SCHEDULER_NETWORK_POLICY: partial(
        scheduler_network_policy, ports=[PORTS["dask-scheduler"], PORTS["dask-dashboard"]]
    ),
    NetworkPolicyTemplates.SPARK_SCHEDULER_NETWORK_POLICY: partial(
        scheduler_network_policy, ports=[PORTS["spark-master"], PORTS["spark-ui"]]
    ),
    AutoScalerTemplates.AUTO_SCALER: auto_scaler,
}

_ALL_TEMPLATES = [
    *DeploymentTemplates, *ServiceTemplates, *ConfigMapTemplates,
    *NetworkPolicyTemplates, *AutoScalerTemplates,
]
_missing = [template for template in _ALL_TEMPLATES if template not in TEMPLATES]
if _missing:
    raise RuntimeError(f"Manifest templates without an implementation: {_missing}")


def generate_manifest(context: Mapping[str, Any], template: Enum) -> Any:
    """
    Render a template with the given context.

    Args:
        context: Template values (unknown keys are ignored by the template)
        template: Member of one of the *Templates enums

    Returns:
        Kubernetes model object for the resource
    """
    try:
        render = TEMPLATES[template]
    except KeyError:
        raise ValueError(f"Unknown manifest template: {template}") from None
    logger.debug(f"[K8S] Rendering manifest {template.value} for {context.get('name') or context.get('config_map_name')}")
    return render(**context)
