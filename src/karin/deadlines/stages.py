"""Stage flow of the Ley Karin process.

The flow is a fixed chain following ``ProcessStage`` declaration order.
Some stages are optional and are skipped when the case circumstances make
them inapplicable.
"""

from __future__ import annotations

from typing import Callable, Iterable

from karin.core.types import ProcessStage
from karin.deadlines.models import AdvanceCheck, CaseContext, DeadlineInstance

STAGE_ORDER: tuple[ProcessStage, ...] = tuple(ProcessStage)

# Applicability predicates for optional stages; absent stages always apply
_APPLIES: dict[ProcessStage, Callable[[CaseContext], bool]] = {
    ProcessStage.SUBSANATION: lambda ctx: ctx.requires_subsanation,
    ProcessStage.INVESTIGATION_EXTENSION: lambda ctx: ctx.extension_requested,
    ProcessStage.INVESTIGATION: lambda ctx: not ctx.is_direct_to_authority,
}

_DISPLAY_NAMES: dict[ProcessStage, str] = {
    ProcessStage.RECEPTION: "Recepción de Denuncia",
    ProcessStage.SUBSANATION: "Subsanación",
    ProcessStage.PRECAUTIONARY_MEASURES: "Medidas de Resguardo",
    ProcessStage.DT_NOTIFICATION: "Notificación a DT",
    ProcessStage.INVESTIGATION: "Investigación Interna",
    ProcessStage.INVESTIGATION_EXTENSION: "Prórroga de Investigación",
    ProcessStage.REPORT_CREATION: "Creación de Informe",
    ProcessStage.REPORT_APPROVAL: "Aprobación de Informe",
    ProcessStage.DT_SUBMISSION: "Remisión a DT",
    ProcessStage.DT_RESOLUTION: "Pronunciamiento DT",
    ProcessStage.MEASURES_ADOPTION: "Adopción de Medidas",
    ProcessStage.SANCTIONS: "Aplicación de Sanciones",
    ProcessStage.FINAL_CLOSURE: "Cierre Final",
}

_missing = set(ProcessStage) - set(_DISPLAY_NAMES)
if _missing:
    raise RuntimeError(f"Stages without display name: {sorted(_missing)}")

OPTIONAL_STAGES: frozenset[ProcessStage] = frozenset(_APPLIES)


class StageFlowGraph:
    """Successor lookup with circumstance-based skipping."""

    @staticmethod
    def successor(stage: ProcessStage) -> ProcessStage | None:
        """Unconditional successor, or None for the terminal stage."""
        index = STAGE_ORDER.index(stage)
        if index + 1 >= len(STAGE_ORDER):
            return None
        return STAGE_ORDER[index + 1]

    @staticmethod
    def stage_applies(stage: ProcessStage, context: CaseContext) -> bool:
        predicate = _APPLIES.get(stage)
        return predicate is None or predicate(context)

    def next_stage(
        self, current: ProcessStage, context: CaseContext
    ) -> ProcessStage | None:
        """Next applicable stage after ``current``, skipping optional ones."""
        candidate = self.successor(current)
        while candidate is not None and not self.stage_applies(candidate, context):
            candidate = self.successor(candidate)
        return candidate

    @staticmethod
    def can_advance(
        current_stage: ProcessStage, instances: Iterable[DeadlineInstance]
    ) -> AdvanceCheck:
        """Advancement is blocked by pending mandatory deadlines of the stage."""
        blocking = [
            d for d in instances
            if d.stage == current_stage
            and d.is_legal_requirement
            and not d.is_completed
        ]
        if blocking:
            return AdvanceCheck(
                allowed=False,
                reason="Hay plazos legales pendientes para la etapa actual",
                blocking_instances=blocking,
            )
        return AdvanceCheck(allowed=True)

    @staticmethod
    def ordinal(stage: ProcessStage) -> int:
        return STAGE_ORDER.index(stage)

    @staticmethod
    def display_name(stage: ProcessStage) -> str:
        return _DISPLAY_NAMES[stage]

    @property
    def stage_count(self) -> int:
        return len(STAGE_ORDER)
