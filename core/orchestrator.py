"""Top-level application orchestrator."""

from __future__ import annotations

import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from characters.registry import CharacterRegistry
from characters.resource_machine import ResourceStateMachine
from core.event_bus import EventBus
from core.outbox import NotificationOutbox
from core.policy_runtime import ensure_runtime_dirs, load_effective_config
from core.turn_runner import TurnRunner
from governance.audit_logger import AuditLogger
from governance.turn_coordinator import TurnCoordinator
from llm.base_llm import BaseLLM
from llm.llm_factory import build_backends
from memory.memory_manager import MemoryManager
from memory.retrieval import MemoryRetriever
from relationships.decay_scheduler import DecayScheduler
from relationships.ledger import RelationshipLedger
from store.schemas import Clock, utc_now
from store.sql_store import SQLStore


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components."""

    config: dict[str, Any]
    store: SQLStore
    registry: CharacterRegistry
    event_bus: EventBus
    outbox: NotificationOutbox
    coordinator: TurnCoordinator
    resources: ResourceStateMachine
    memory: MemoryManager
    retriever: MemoryRetriever
    ledger: RelationshipLedger
    decay: DecayScheduler
    backends: dict[str, BaseLLM]
    turns: TurnRunner


class Orchestrator:
    """Creates and wires runtime components for CLI and scheduled use."""

    def __init__(
        self,
        root: Path | None = None,
        overrides: dict[str, Any] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        default_root = Path(__file__).resolve().parents[1]
        self.root = (root or default_root).resolve()
        self.overrides = overrides
        self.clock = clock

    def build(self) -> RuntimeBundle:
        config = load_effective_config(self.root, self.overrides)
        paths = ensure_runtime_dirs(self.root, config)
        clock = self.clock

        sql_store = SQLStore(paths["db_path"], url=config.get("database", {}).get("url"))
        sql_store.create_all()

        registry = CharacterRegistry(config=config.get("characters", {}))
        event_bus = EventBus()
        outbox_cfg = config.get("outbox", {})
        outbox = NotificationOutbox(
            sql_store,
            event_bus=event_bus,
            clock=clock,
            max_attempts=int(outbox_cfg.get("max_attempts", 5)),
        )
        coordinator = TurnCoordinator(sql_store, registry, config.get("turns", {}), clock)
        ledger = RelationshipLedger(sql_store, outbox, config.get("relationships", {}), clock)
        resources = ResourceStateMachine(
            sql_store, outbox, config.get("resources", {}), clock, ledger=ledger
        )
        memory = MemoryManager(sql_store, config.get("memory", {}), clock)
        retriever = MemoryRetriever(memory, config.get("memory", {}).get("retrieval", {}))
        decay_cfg = config.get("decay", {})
        scheduler = DecayScheduler(
            sql_store,
            ledger,
            memory=memory,
            registry=registry,
            outbox=outbox,
            config=decay_cfg,
            clock=clock,
            rng=random.Random(decay_cfg.get("seed")),
        )
        backends = build_backends(config)
        turns = TurnRunner(
            coordinator=coordinator,
            resources=resources,
            memory=memory,
            retriever=retriever,
            ledger=ledger,
            backends=backends,
            registry=registry,
            outbox=outbox,
            audit_logger=AuditLogger(paths["audit_log_path"]),
        )

        for name, targets in (config.get("characters", {}).get("relationships") or {}).items():
            for target, seed in (targets or {}).items():
                if ledger.get(name, target) is None:
                    if isinstance(seed, dict):
                        ledger.seed(name, target, int(seed.get("affinity", 0)), seed.get("label"))
                    else:
                        ledger.seed(name, target, int(seed))

        return RuntimeBundle(
            config=config,
            store=sql_store,
            registry=registry,
            event_bus=event_bus,
            outbox=outbox,
            coordinator=coordinator,
            resources=resources,
            memory=memory,
            retriever=retriever,
            ledger=ledger,
            decay=scheduler,
            backends=backends,
            turns=turns,
        )
