"""
Runs step differential testing
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

import click

from mipsevm_differential.config import ADDRESS_HEX, DEFAULT_GAS_LIMIT, HarnessConfig
from mipsevm_differential.differential_runner import DifferentialStepRunner, build_corpus
from mipsevm_differential.environment import ExecutionEnvironment
from mipsevm_differential.exceptions import DeploymentFailure
from mipsevm_differential.loader import Bindings
from mipsevm_witness.exceptions import CodecError


def environment_factory() -> Callable[[], ExecutionEnvironment]:
    """The execution specification's EVM. Needs the ``specs`` extra."""
    from mipsevm_differential.specs_environment import SpecsEnvironment

    return SpecsEnvironment


def parse_address(ctx, param, value: Optional[str]) -> Optional[bytes]:
    """Click callback turning 0x prefixed hex into a 20 byte address"""
    if value is None:
        return None
    try:
        return ADDRESS_HEX.decode(value)
    except CodecError as e:
        raise click.BadParameter(str(e))


@click.command(
    help=("Executes MIPS step witnesses on the EVM modules and compares the post-state hashes")
)
@click.option(
    "--fixtures",
    "-f",
    "fixtures_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, readable=True),
    required=True,
    help="A directory holding step witness fixtures",
)
@click.option(
    "--work",
    "-w",
    "work_dir",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, readable=True, writable=True),
    default="/tmp/step_diff",
    help="The work dir, which will hold failure reports",
)
@click.option(
    "--bindings",
    "-b",
    "bindings_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, readable=True),
    required=False,
    default=None,
    help="Directory holding mips_creation.bin and preimage_oracle_deployed.bin",
)
@click.option(
    "--mips-address",
    "mips_address",
    callback=parse_address,
    required=False,
    default=None,
    help="Address the MIPS stepper module is deployed at",
)
@click.option(
    "--preimage-oracle-address",
    "preimage_oracle_address",
    callback=parse_address,
    required=False,
    default=None,
    help="Address the preimage oracle module is deployed at",
)
@click.option(
    "--gas-limit",
    "gas_limit",
    type=int,
    required=False,
    default=DEFAULT_GAS_LIMIT,
    help="Gas limit of every call.",
)
@click.option(
    "--shared-environment",
    "shared_environment",
    is_flag=True,
    default=False,
    help="Run every fixture on one environment instead of a fresh one per fixture.",
)
@click.option("--verbose", "-v", "verbose", is_flag=True, default=False, help="Debug logging.")
def step_differential(
    fixtures_dir: str,
    work_dir: str,
    bindings_dir: Optional[str],
    mips_address: Optional[bytes],
    preimage_oracle_address: Optional[bytes],
    gas_limit: int,
    shared_environment: bool,
    verbose: bool,
):
    """
    The CLI wrapper to run step differential testing
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = HarnessConfig(gas_limit=gas_limit)
    if mips_address is not None:
        config = replace(config, mips_address=mips_address)
    if preimage_oracle_address is not None:
        config = replace(config, preimage_oracle_address=preimage_oracle_address)
    if bindings_dir is not None:
        config = replace(config, bindings_dir=Path(bindings_dir))

    try:
        bindings = Bindings.load(config.bindings_dir)
    except DeploymentFailure as e:
        raise click.ClickException(str(e))

    corpus = build_corpus(fixtures_dir)
    print("Loaded %d step fixtures from %s" % (len(corpus), fixtures_dir))

    runner = DifferentialStepRunner(
        corpus,
        environment_factory(),
        bindings,
        config,
        work_dir=work_dir,
        shared_environment=shared_environment,
    )
    if not runner.run():
        sys.exit(1)


if __name__ == "__main__":
    step_differential()
