"""
Phase guard: declarative command rules and pure legality checks.

COMMAND_RULES is the single source of truth for which roles may issue a
command, which phases it is legal in, and (for commands that move the
session to a fixed phase) the declared target and its legal sources.

The checks return a CommandRejection value instead of raising, so the
orchestrator can turn every outcome into a definite response.
"""

from dataclasses import dataclass

from quiz.logic.commands import Command
from quiz.logic.enums import CommandKind, Phase, ReasonCode, Role


@dataclass(frozen=True)
class CommandRejection:
    reason: ReasonCode
    detail: str
    field: str | None = None


@dataclass(frozen=True)
class CommandRule:
    roles: frozenset[Role]
    allowed_phases: frozenset[Phase] | None = None
    target: Phase | None = None
    allowed_sources: frozenset[Phase] | None = None
    # Outside allowed_phases the command is accepted but has no effect.
    ignore_outside_phases: bool = False


_PERFORMER = frozenset({Role.PERFORMER})
_AUDIENCE = frozenset({Role.AUDIENCE})


def _phases(*phases: Phase) -> frozenset[Phase]:
    return frozenset(phases)


def _targeted(roles: frozenset[Role], target: Phase, *sources: Phase) -> CommandRule:
    return CommandRule(roles=roles, allowed_phases=_phases(*sources), target=target, allowed_sources=_phases(*sources))


COMMAND_RULES: dict[CommandKind, CommandRule] = {
    CommandKind.CREATE_SESSION: CommandRule(roles=_PERFORMER, allowed_phases=_phases(Phase.IDLE)),
    CommandKind.START_GAME: _targeted(_PERFORMER, Phase.START, Phase.LOBBY),
    CommandKind.GIVE_HINT: CommandRule(roles=_PERFORMER, allowed_phases=_phases(Phase.START, Phase.HINT)),
    CommandKind.OPEN_GUESSING: _targeted(_PERFORMER, Phase.GUESSING, Phase.START, Phase.HINT),
    CommandKind.SUBMIT_ANSWER: CommandRule(
        roles=_AUDIENCE,
        allowed_phases=_phases(Phase.GUESSING),
        ignore_outside_phases=True,
    ),
    CommandKind.LOCK_ANSWERS: _targeted(_PERFORMER, Phase.LOCK, Phase.GUESSING),
    CommandKind.REVEAL_ANSWER: _targeted(_PERFORMER, Phase.REVEAL, Phase.LOCK),
    CommandKind.PLAY_SONG: CommandRule(roles=_PERFORMER, allowed_phases=_phases(Phase.REVEAL)),
    CommandKind.END_SONG: _targeted(_PERFORMER, Phase.INTERMISSION, Phase.PLAY),
    CommandKind.NEXT_ROUND: CommandRule(roles=_PERFORMER, allowed_phases=_phases(Phase.LOBBY, Phase.INTERMISSION)),
    CommandKind.END_GAME: _targeted(_PERFORMER, Phase.FINISHED, Phase.INTERMISSION),
}


def _sorted_names(phases: frozenset[Phase]) -> str:
    order = list(Phase)
    return ", ".join(p.value for p in sorted(phases, key=order.index))


def ensure_role(command: Command) -> CommandRejection | None:
    """Reject a command issued by a role not permitted to issue it."""
    rule = COMMAND_RULES[command.kind]
    if command.issued_by_role in rule.roles:
        return None
    expected = ", ".join(sorted(r.value for r in rule.roles))
    return CommandRejection(
        reason=ReasonCode.UNAUTHORIZED_ROLE,
        detail=f"{command.kind} requires role {expected}, got {command.issued_by_role}",
        field="issuedByRole",
    )


def ensure_allowed(current_phase: Phase, command: Command) -> CommandRejection | None:
    """Reject a command whose allowed phases do not include the current phase."""
    rule = COMMAND_RULES[command.kind]
    if rule.allowed_phases is None or current_phase in rule.allowed_phases:
        return None
    return CommandRejection(
        reason=ReasonCode.INVALID_STATE_TRANSITION,
        detail=(
            f"{command.kind} is not allowed in phase {current_phase}; "
            f"allowed phases: {_sorted_names(rule.allowed_phases)}"
        ),
    )


def ensure_change_allowed(current_phase: Phase, command: Command) -> CommandRejection | None:
    """Reject a phase-changing command issued from a phase outside its allowed sources."""
    rule = COMMAND_RULES[command.kind]
    if rule.target is None or rule.allowed_sources is None:
        return None
    if current_phase in rule.allowed_sources:
        return None
    return CommandRejection(
        reason=ReasonCode.INVALID_STATE_TRANSITION,
        detail=f"Cannot change phase from {current_phase} to {rule.target}",
    )


def is_ignored(current_phase: Phase, command: Command) -> bool:
    """True when the command is valid but has no effect in the current phase."""
    rule = COMMAND_RULES[command.kind]
    return (
        rule.ignore_outside_phases
        and rule.allowed_phases is not None
        and current_phase not in rule.allowed_phases
    )
