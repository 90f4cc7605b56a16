"""Build specifications for the two kinds of build task."""
from typing import List

from backend_infra.pipeline.models import BuildSpec


def infrastructure_build_spec(template_file: str, install_commands: List[str],
                              build_commands: List[str], output_directory: str = "dist") -> BuildSpec:
    """Install the infrastructure project and synthesize one stack template.

    The artifact holds the rendered template only.
    """
    return BuildSpec(
        install_commands=install_commands,
        build_commands=build_commands,
        base_directory=output_directory,
        files=[template_file],
    )


def go_binary_build_spec(base_directory: str, output_file_name: str) -> BuildSpec:
    """Fetch Go dependencies and compile a single binary named ``output_file_name``."""
    return BuildSpec(
        install_commands=[
            f"cd {base_directory}",
            "go get ./...",
        ],
        build_commands=[
            f"go build -o {output_file_name}",
        ],
        base_directory=base_directory,
        files=[output_file_name],
    )
