#!/usr/bin/env python3
"""Rule definitions: the builder API and the YAML rules file that compiles into it.

A rules file lists instances, each bound to one download client and an
ordered list of deletion policies::

    include:
      - trackers.yaml
    instances:
      - name: seedbox
        transmission:
          url: http://seedbox:9091/transmission/rpc
          user: admin
          password: ${TRANSMISSION_PASSWORD}
          poll_interval: 5 min
        policies:
          - name: linux-isos
            trackers: [torrent.ubuntu.com]
            max_file_count: 4
            match:
              max_ratio: 1.0
              min_seeding_time: 60 min
              max_seeding_time: 2 days
            delete_data: true

The same rules can be written in Python::

    instance(
        transmission("http://seedbox:9091/transmission/rpc", user="admin"),
        [delete_policy("linux-isos",
                       on_trackers(["torrent.ubuntu.com"]).max_file_count(4),
                       matching().max_ratio(1.0).min_seeding_time("60 min")
                                 .max_seeding_time("2 days"))],
        name="seedbox",
    )
"""

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .config import ConfigError, Connection, Instance
from .constants import DEFAULT_POLL_INTERVAL, ClientKind
from .policy import Condition, DeletePolicy, InvalidPolicyError, Precondition
from .utils import parse_duration

logger = logging.getLogger(__name__)

DurationValue = Union[str, int, float, timedelta]


# ─── Builder API ───────────────────────────────────────────────────────────

def transmission(url: str, user: Optional[str] = None,
                 password: Optional[str] = None) -> Connection:
    """Connection to a Transmission RPC endpoint."""
    return Connection(kind=ClientKind.TRANSMISSION, url=url, user=user, password=password)


def qbittorrent(url: str, user: Optional[str] = None, password: Optional[str] = None,
                verify_ssl: bool = False) -> Connection:
    """Connection to a qBittorrent WebUI."""
    return Connection(kind=ClientKind.QBITTORRENT, url=url, user=user,
                      password=password, verify_ssl=verify_ssl)


@dataclass(frozen=True)
class PreconditionBuilder:
    """Chained construction of a :class:`Precondition`."""
    trackers: frozenset
    min_files: Optional[int] = None
    max_files: Optional[int] = None

    def min_file_count(self, count: int) -> "PreconditionBuilder":
        return replace(self, min_files=count)

    def max_file_count(self, count: int) -> "PreconditionBuilder":
        return replace(self, max_files=count)

    def build(self) -> Precondition:
        return Precondition(trackers=self.trackers, min_file_count=self.min_files,
                            max_file_count=self.max_files)


@dataclass(frozen=True)
class ConditionBuilder:
    """Chained construction of a :class:`Condition`."""
    ratio: Optional[float] = None
    min_time: Optional[timedelta] = None
    max_time: Optional[timedelta] = None

    def max_ratio(self, ratio: float) -> "ConditionBuilder":
        return replace(self, ratio=float(ratio))

    def min_seeding_time(self, duration: DurationValue) -> "ConditionBuilder":
        return replace(self, min_time=parse_duration(duration))

    def max_seeding_time(self, duration: DurationValue) -> "ConditionBuilder":
        return replace(self, max_time=parse_duration(duration))

    def build(self) -> Condition:
        return Condition(max_ratio=self.ratio, min_seeding_time=self.min_time,
                         max_seeding_time=self.max_time)


def on_trackers(trackers: Iterable[str]) -> PreconditionBuilder:
    """Start a precondition covering torrents announced to these tracker hosts."""
    return PreconditionBuilder(trackers=frozenset(trackers))


def matching() -> ConditionBuilder:
    """Start a deletion condition; set at least one threshold before use."""
    return ConditionBuilder()


def delete_policy(name: Optional[str],
                  when: Union[PreconditionBuilder, Precondition],
                  condition: Union[ConditionBuilder, Condition],
                  delete_data: bool = True) -> DeletePolicy:
    """
    Build a deletion policy.

    Args:
        name: Policy name used in logs and metrics; None reports the index
        when: Precondition (or its builder) selecting governed torrents
        condition: Condition (or its builder) qualifying them for deletion
        delete_data: Also remove downloaded data, not only the torrent

    Returns:
        Immutable deletion policy

    Raises:
        InvalidPolicyError: If the condition sets no threshold
    """
    if isinstance(when, PreconditionBuilder):
        when = when.build()
    if isinstance(condition, ConditionBuilder):
        condition = condition.build()
    return DeletePolicy(precondition=when, condition=condition, name=name,
                        delete_data=delete_data)


def instance(connection: Connection, policies: Iterable[DeletePolicy],
             poll_interval: DurationValue = DEFAULT_POLL_INTERVAL,
             name: Optional[str] = None) -> Instance:
    """Bind policies to a download client."""
    return Instance(connection=connection, policies=tuple(policies),
                    poll_interval=parse_duration(poll_interval), name=name)


# ─── Rules file ────────────────────────────────────────────────────────────

class ConnectionSpec(BaseModel):
    """Client connection block of a rules file."""
    model_config = ConfigDict(extra="forbid")

    url: str
    user: Optional[str] = None
    password: Optional[str] = None
    poll_interval: Optional[Union[float, str]] = None
    verify_ssl: bool = False


class MatchSpec(BaseModel):
    """Deletion thresholds of a policy."""
    model_config = ConfigDict(extra="forbid")

    max_ratio: Optional[float] = None
    min_seeding_time: Optional[Union[float, str]] = None
    max_seeding_time: Optional[Union[float, str]] = None


class PolicySpec(BaseModel):
    """One policy entry of a rules file."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    trackers: List[str] = Field(min_length=1)
    min_file_count: Optional[int] = Field(default=None, ge=0)
    max_file_count: Optional[int] = Field(default=None, ge=0)
    match: MatchSpec
    delete_data: bool = True


class InstanceSpec(BaseModel):
    """One instance entry of a rules file."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    transmission: Optional[ConnectionSpec] = None
    qbittorrent: Optional[ConnectionSpec] = None
    policies: List[PolicySpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_client(self) -> "InstanceSpec":
        if (self.transmission is None) == (self.qbittorrent is None):
            raise ValueError("each instance needs exactly one of 'transmission' or 'qbittorrent'")
        return self


class RulesFile(BaseModel):
    """Top level of a rules file."""
    model_config = ConfigDict(extra="forbid")

    include: List[str] = Field(default_factory=list)
    instances: List[InstanceSpec] = Field(default_factory=list)


def _expand_env(value: Any) -> Any:
    """Expand ``${VAR}`` references in every string of a loaded document."""
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    return value


def _duration(value: Optional[Union[float, str]], what: str) -> Optional[timedelta]:
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise ConfigError(f"{what}: {e}") from e


def _compile_instance(spec: InstanceSpec, source: Path) -> Instance:
    if spec.transmission is not None:
        conn_spec = spec.transmission
        connection = transmission(conn_spec.url, conn_spec.user, conn_spec.password)
    else:
        conn_spec = spec.qbittorrent
        connection = qbittorrent(conn_spec.url, conn_spec.user, conn_spec.password,
                                 verify_ssl=conn_spec.verify_ssl)

    label = spec.name or conn_spec.url
    policies = []
    for index, policy_spec in enumerate(spec.policies):
        policy_label = policy_spec.name or str(index)
        what = f"{source}: instance {label}, policy {policy_label}"

        when = on_trackers(policy_spec.trackers)
        if policy_spec.min_file_count is not None:
            when = when.min_file_count(policy_spec.min_file_count)
        if policy_spec.max_file_count is not None:
            when = when.max_file_count(policy_spec.max_file_count)

        condition = ConditionBuilder(
            ratio=policy_spec.match.max_ratio,
            min_time=_duration(policy_spec.match.min_seeding_time, what),
            max_time=_duration(policy_spec.match.max_seeding_time, what),
        )
        try:
            policies.append(delete_policy(policy_spec.name, when, condition,
                                          delete_data=policy_spec.delete_data))
        except InvalidPolicyError as e:
            raise InvalidPolicyError(f"{what}: {e}") from e

    poll_interval = _duration(conn_spec.poll_interval, f"{source}: instance {label}")
    if poll_interval is None:
        poll_interval = DEFAULT_POLL_INTERVAL
    return instance(connection, policies, poll_interval=poll_interval, name=spec.name)


def _load(path: Path, seen: set) -> List[Instance]:
    resolved = path.resolve()
    if resolved in seen:
        raise ConfigError(f"Include cycle through {path}")
    seen = seen | {resolved}

    try:
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read rules file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    try:
        rules = RulesFile.model_validate(_expand_env(document or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid rules file {path}:\n{e}") from e

    instances = [_compile_instance(spec, path) for spec in rules.instances]
    for include in rules.include:
        instances.extend(_load(path.parent / include, seen))
    return instances


def load_instances(path: Union[str, Path]) -> List[Instance]:
    """
    Load all instances from a rules file and the files it includes.

    Args:
        path: Path to the YAML rules file

    Returns:
        Instances in file order, included files' instances after the
        including file's own

    Raises:
        ConfigError: If a file is unreadable or malformed, or two instances
            share a label
        InvalidPolicyError: If a policy has no deletion threshold
    """
    instances = _load(Path(path), set())

    seen = set()
    for inst in instances:
        if inst.label in seen:
            raise ConfigError(f"Instance label {inst.label!r} is used more than once in {path}")
        seen.add(inst.label)

    logger.debug(f"Loaded {len(instances)} instance(s) from {path}")
    return instances
