"""
Runs a corpus of step fixtures through the stepper module and reports divergences from the
native emulator.
"""
import json
import os
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from mipsevm_witness.exceptions import CodecError
from mipsevm_witness.serialization import FIXED_32_HEX
from mipsevm_witness.step_witness import StepWitness

from .config import HarnessConfig
from .environment import ExecutionEnvironment
from .exceptions import FingerprintMismatch, HarnessError
from .executor import StepExecutor
from .loader import Bindings, ContractLoader


def write_json_file(data: Dict[str, Any], file_path: str) -> None:
    """Write a JSON file, pretty printed with sorted keys."""
    with open(file_path, "w") as f:
        json.dump(data, f, ensure_ascii=False, indent=4, sort_keys=True)


@dataclass(frozen=True)
class StepFixture:
    """
    A step witness and, optionally, the post-state hash the native emulator computed for it.
    """

    name: str
    witness: StepWitness
    post_state_hash: Optional[bytes] = None

    @classmethod
    def from_json(cls, name: str, data: Dict[str, Any]) -> "StepFixture":
        """Build the fixture from ``{"witness": {...}, "postStateHash": "0x..."}``"""
        if not isinstance(data, dict) or "witness" not in data:
            raise CodecError("fixture %s has no witness" % name)
        post_state_hash = data.get("postStateHash")
        return cls(
            name=name,
            witness=StepWitness.from_json(data["witness"]),
            post_state_hash=(
                None if post_state_hash is None else FIXED_32_HEX.decode(post_state_hash)
            ),
        )

    def json_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"witness": self.witness.json_dict()}
        if self.post_state_hash is not None:
            result["postStateHash"] = FIXED_32_HEX.encode(self.post_state_hash)
        return result


@dataclass
class StepOutcome:
    """The result of running one fixture"""

    name: str
    state_hash: Optional[bytes] = None
    error: Optional[Exception] = None

    @property
    def clean(self) -> bool:
        return self.error is None

    def json_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name}
        if self.state_hash is not None:
            result["stateHash"] = FIXED_32_HEX.encode(self.state_hash)
        if self.error is not None:
            result["errorType"] = type(self.error).__name__
            result["error"] = str(self.error)
        if isinstance(self.error, FingerprintMismatch):
            result["expected"] = FIXED_32_HEX.encode(self.error.expected)
            result["actual"] = FIXED_32_HEX.encode(self.error.actual)
        return result


def load_fixture_file(file_path: Path) -> List[StepFixture]:
    """
    Load a fixture file. It holds either one fixture, named after the file, or an object
    mapping fixture names to fixtures.
    """
    with open(file_path) as f:
        data = json.load(f)
    if isinstance(data, dict) and "witness" in data:
        return [StepFixture.from_json(Path(file_path).stem, data)]
    if not isinstance(data, dict):
        raise CodecError("%s does not hold step fixtures" % file_path)
    return [StepFixture.from_json(name, body) for (name, body) in data.items()]


def build_corpus(corpus_dir: str) -> List[StepFixture]:
    """Loads every step fixture found below a directory."""
    corpus = []
    for subdir, dirs, files in os.walk(corpus_dir):
        dirs.sort()
        for file in sorted(files):
            if not file.endswith(".json"):
                continue
            try:
                corpus.extend(load_fixture_file(Path(subdir) / file))
            except ValueError:
                # Only mask value errors such as json errors and witness format errors
                continue
    return corpus


class DifferentialStepRunner:
    """
    Holds the corpus and runs each fixture against the deployed modules.

    By default every fixture gets a freshly initialized environment, so fixtures cannot see
    each other's preimage disclosures. With ``shared_environment`` all fixtures run, in
    order, against one environment.
    """

    corpus: List[StepFixture]
    env_factory: Callable[[], ExecutionEnvironment]
    bindings: Bindings
    config: HarnessConfig
    work_dir: str
    shared_environment: bool
    outcomes: List[StepOutcome]
    _shared_env: Optional[ExecutionEnvironment]

    def __init__(
        self,
        corpus: List[StepFixture],
        env_factory: Callable[[], ExecutionEnvironment],
        bindings: Bindings,
        config: Optional[HarnessConfig] = None,
        work_dir: str = "/tmp/step_diff",
        shared_environment: bool = False,
    ) -> None:
        self.corpus = corpus
        self.env_factory = env_factory
        self.bindings = bindings
        self.config = config if config is not None else HarnessConfig()
        self.work_dir = work_dir
        self.shared_environment = shared_environment
        self.outcomes = []
        self._shared_env = None

    def environment(self) -> ExecutionEnvironment:
        """An initialized environment for the next fixture"""
        if self.shared_environment and self._shared_env is not None:
            return self._shared_env
        env = self.env_factory()
        ContractLoader(self.bindings, self.config).initialize(env)
        if self.shared_environment:
            self._shared_env = env
        return env

    def run(self) -> bool:
        """Run every fixture. Returns True if none of them failed."""
        if not os.path.exists(self.work_dir):
            os.makedirs(self.work_dir)
        self.outcomes = []
        for fixture in self.corpus:
            outcome = self.run_case(fixture)
            self.outcomes.append(outcome)
            if not outcome.clean:
                print("Differential fault found:", fixture.name, "-", outcome.error)
                self.write_failure(fixture, outcome)
        self.finish()
        return all(outcome.clean for outcome in self.outcomes)

    def run_case(self, fixture: StepFixture) -> StepOutcome:
        """Step one fixture and compare the result with the native emulator's"""
        outcome = StepOutcome(fixture.name)
        try:
            executor = StepExecutor(self.environment(), self.config)
            outcome.state_hash = executor.step(fixture.witness)
            if (
                fixture.post_state_hash is not None
                and fixture.post_state_hash != outcome.state_hash
            ):
                raise FingerprintMismatch(
                    fixture.post_state_hash,
                    outcome.state_hash,
                    "Native post-state hash does not match EVM post-state hash",
                )
        except (HarnessError, CodecError) as e:
            outcome.error = e
            if not isinstance(e, FingerprintMismatch):
                traceback.print_exc()
        return outcome

    def write_failure(self, fixture: StepFixture, outcome: StepOutcome) -> None:
        """Writes the fixture and the failure details to the working directory."""
        report = outcome.json_dict()
        report["fixture"] = fixture.json_dict()
        file_name = "%s.failure.json" % fixture.name.replace(os.sep, "_")
        write_json_file(report, os.path.join(self.work_dir, file_name))

    def finish(self) -> None:
        """Logs a summary of the run."""
        failures = sum(1 for outcome in self.outcomes if not outcome.clean)
        print("Finished %d steps, %d failed" % (len(self.outcomes), failures))
