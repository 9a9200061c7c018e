import json
import os
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

ChainId = int
ArtifactName = str

STANDARD_ARTIFACTS_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}

# marks a contract that is deployed but whose step has not finished
PENDING_KEY = "pending"


class ArtifactConflict(ValueError):
    """Raised when an artifact would overwrite a different stored artifact of the same name."""

    def __init__(self, existing: "Artifact", proposed: "Artifact"):
        self.existing = existing
        self.proposed = proposed
        super().__init__(
            f"Artifact '{existing.name}' is already stored at {existing.address}; "
            f"refusing to overwrite it with {proposed.address}"
        )


class Artifact(NamedTuple):
    """The durable record of a successfully completed deployment step."""

    name: ArtifactName
    address: ChecksumAddress
    deployed_at: int = 0
    contract_type: Optional[str] = None
    abi: Sequence[Dict[str, Any]] = tuple()
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    deployer: Optional[str] = None


def _to_record(artifact: Artifact) -> Dict[str, Any]:
    abi = list(artifact.abi)
    abi.sort(key=lambda d: (d["type"], d.get("name", "")))
    return {
        "address": to_checksum_address(artifact.address),
        "contract_type": artifact.contract_type or artifact.name,
        "deployed_at": int(artifact.deployed_at),
        "abi": abi,
        "tx_hash": artifact.tx_hash,
        "block_number": None if artifact.block_number is None else int(artifact.block_number),
        "deployer": artifact.deployer,
    }


def _from_record(name: ArtifactName, record: Dict[str, Any]) -> Artifact:
    return Artifact(
        name=name,
        address=record["address"],
        deployed_at=record.get("deployed_at", 0),
        contract_type=record.get("contract_type", name),
        abi=record.get("abi", list()),
        tx_hash=record.get("tx_hash"),
        block_number=record.get("block_number"),
        deployer=record.get("deployer"),
    )


def _load_data(filepath: Path) -> Dict[str, Dict[str, Any]]:
    if not filepath.exists():
        return dict()
    with open(filepath, "r") as file:
        return json.load(file)


def _write_data(data: Dict[str, Dict[str, Any]], filepath: Path) -> None:
    """Atomically writes artifact data; either the old or the new file survives a crash."""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    ordered = {
        chain_id: dict(sorted(records.items())) for chain_id, records in sorted(data.items())
    }
    temp_filepath = filepath.with_suffix(".temp.json")
    with open(temp_filepath, "w") as file:
        json.dump(ordered, file, **STANDARD_ARTIFACTS_JSON_FORMAT)
        file.flush()
        os.fsync(file.fileno())
    os.replace(temp_filepath, filepath)


def read_artifacts(filepath: Path) -> Dict[ChainId, List[Artifact]]:
    """Returns every artifact in an artifacts file, grouped by chain id."""
    artifacts = defaultdict(list)
    for chain_id, records in _load_data(filepath).items():
        for name, record in records.items():
            if not record.get(PENDING_KEY, False):
                artifacts[int(chain_id)].append(_from_record(name, record))
    return dict(artifacts)


class ArtifactStore:
    """
    Durable mapping from step name to deployed artifact for a single chain.

    Artifacts for every chain live in the same JSON file, keyed by chain id, so separate
    invocations against the same network see the same artifacts. Each `put` is written
    through to disk before returning.

    A contract can also be recorded as pending with `checkpoint` as soon as it is
    deployed, before the rest of its step has run. Pending records are not artifacts:
    they are invisible to `get`, `names` and `all`, and are replaced once the step
    completes.
    """

    def __init__(self, filepath: Path, chain_id: ChainId):
        self.filepath = Path(filepath)
        self.chain_id = int(chain_id)

    def _chain_records(self, pending: bool = False) -> Dict[str, Any]:
        records = _load_data(self.filepath).get(str(self.chain_id), dict())
        return {
            name: record
            for name, record in records.items()
            if record.get(PENDING_KEY, False) == pending
        }

    def _commit(self, artifact: Artifact, pending: bool = False) -> Artifact:
        data = _load_data(self.filepath)
        record = _to_record(artifact)
        if pending:
            record[PENDING_KEY] = True
        data.setdefault(str(self.chain_id), dict())[artifact.name] = record
        _write_data(data, self.filepath)
        return _from_record(artifact.name, record)

    def __contains__(self, name: ArtifactName) -> bool:
        return name in self._chain_records()

    @property
    def names(self) -> List[ArtifactName]:
        return list(self._chain_records())

    def all(self) -> List[Artifact]:
        artifacts = [_from_record(n, r) for n, r in self._chain_records().items()]
        artifacts.sort(key=lambda a: (a.deployed_at, a.name))
        return artifacts

    def get(self, name: ArtifactName) -> Optional[Artifact]:
        record = self._chain_records().get(name)
        if record is None:
            return None
        return _from_record(name, record)

    def put(self, artifact: Artifact) -> Artifact:
        """
        Stores a new artifact. Storing an identical artifact again is a no-op;
        storing a different one under an existing name raises `ArtifactConflict`
        and leaves the store unchanged.
        """
        existing = self.get(artifact.name)
        if existing is not None:
            if _to_record(existing) != _to_record(artifact):
                raise ArtifactConflict(existing=existing, proposed=artifact)
            return existing
        return self._commit(artifact)

    def replace(self, artifact: Artifact) -> Artifact:
        """Stores an artifact, discarding any previous artifact of the same name."""
        existing = self.get(artifact.name)
        if existing is not None:
            print(f"(i) Replacing {existing.name} artifact at {existing.address}")
        return self._commit(artifact)

    def checkpoint(self, artifact: Artifact) -> Artifact:
        """Records a freshly deployed contract of a step that has not finished yet."""
        return self._commit(artifact, pending=True)

    def pending(self, name: ArtifactName) -> Optional[Artifact]:
        """Returns the contract deployed by an unfinished step, if any."""
        record = self._chain_records(pending=True).get(name)
        if record is None:
            return None
        return _from_record(name, record)

    def next_ordinal(self) -> int:
        ordinals = [record.get("deployed_at", 0) for record in self._chain_records().values()]
        return max(ordinals, default=0) + 1


def artifact_from_instance(name: ArtifactName, instance, deployed_at: int = 0) -> Artifact:
    """Builds an artifact from a deployed ape contract instance."""
    abi = [entry.model_dump(mode="json", by_alias=True) for entry in instance.contract_type.abi]
    receipt = instance.receipt
    return Artifact(
        name=name,
        address=to_checksum_address(instance.address),
        deployed_at=deployed_at,
        contract_type=instance.contract_type.name,
        abi=abi,
        tx_hash=receipt.txn_hash,
        block_number=receipt.block_number,
        deployer=receipt.transaction.sender,
    )
