"""Generate CRD manifests for the Kuberhealthy resources with controller-gen."""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrdName:
    """Singular and plural resource names of a CRD."""

    singular: str
    plural: str


@dataclass
class CrdGenerator:
    """One controller-gen run producing manifests for an API package."""

    controller_gen_opts: str
    yaml_dir: str
    crd_api_group: str
    controller_path: str
    crd_names: list[CrdName] = field(default_factory=list)
    customize_yaml: Callable[[CrdGenerator], None] | None = None

    def generate(self, controller_gen: str = "controller-gen") -> None:
        """Run controller-gen in the API package directory, then any customisation.

        Raises subprocess.CalledProcessError when the tool fails and
        RuntimeError when the customisation fails.
        """
        output_dir = os.path.abspath(self.yaml_dir)
        work_dir = os.path.abspath(self.controller_path)
        log.info("running binary: %s", controller_gen)
        subprocess.run(
            [controller_gen, self.controller_gen_opts, "paths=.", f"output:crd:dir={output_dir}"],
            cwd=work_dir,
            check=True,
        )
        if self.customize_yaml is None:
            return
        try:
            self.customize_yaml(self)
        except Exception as exc:
            raise RuntimeError(f"customizing YAML: {exc}") from exc


CRD_GENERATORS = [
    CrdGenerator(
        controller_gen_opts="crd:crdVersions=v1,preserveUnknownFields=false",
        yaml_dir="./generated",
        crd_api_group="comcast.github.io",
        controller_path="../pkg/apis/khcheck/v1",
        crd_names=[CrdName("khcheck", "khchecks")],
    ),
    CrdGenerator(
        controller_gen_opts="crd:crdVersions=v1,preserveUnknownFields=false",
        yaml_dir="./generated",
        crd_api_group="comcast.github.io",
        controller_path="../pkg/apis/khjob/v1",
        crd_names=[CrdName("khjob", "khjobs")],
    ),
    CrdGenerator(
        controller_gen_opts="crd:crdVersions=v1",
        yaml_dir="./generated",
        crd_api_group="comcast.github.io",
        controller_path="../pkg/apis/khstate/v1",
        crd_names=[CrdName("khstate", "khstates")],
    ),
]


def main(argv: list[str] | None = None) -> int:
    """Generate every CRD manifest; returns 1 on the first failure."""
    parser = argparse.ArgumentParser(description="Generate Kuberhealthy CRD manifests.")
    parser.add_argument(
        "-controller-gen",
        "--controller-gen",
        dest="controller_gen",
        default="controller-gen",
        help="controller-gen binary path",
    )
    parser.add_argument(
        "-gojsontoyaml",
        "--gojsontoyaml",
        dest="gojsontoyaml",
        default="gojsontoyaml",
        help="gojsontoyaml binary path",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    for generator in CRD_GENERATORS:
        try:
            generator.generate(args.controller_gen)
        except (OSError, subprocess.CalledProcessError, RuntimeError) as exc:
            log.error("generating YAML manifests: %s", exc)
            return 1
    return 0