"""Per-role BB84 handshake state machine.

This module drives the post-processing pipeline for one peer:
- Qubit preparation and measurement (simulated channel)
- Basis sifting
- QBER estimation via sampling
- Block-parity reconciliation
- Privacy amplification (Toeplitz hashing)
- Final key commitment

Notes
-----
Both peers run their own ``ProtocolStateMachine`` and only ever talk through
a ``MessageChannel``. Local actions and incoming messages go through one
transition function backed by ``TRANSITIONS``: each entry names the roles and
phases in which the event is legal, and anything else is a logged no-op.

The successful flow is:
1. Alice PREPARE, Bob MEASURE (quantum phase)
2. ANNOUNCE_BASES, both sift, Bob confirms the keep-mask
3. Alice ESTIMATE_QBER, both decide against the threshold
4. Bob discloses block parities, Alice CORRECT_ERRORS
5. Alice AMPLIFY and commits, Bob verifies the commitment

Any ``ProtocolError`` raised inside a transition aborts the run and the peer
is told why. A peer's abort is adopted without replying.
"""

import enum
import math
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Union

import numpy as np

from qkd_handshake.core.base import (
    TERMINAL_PHASES,
    Phase,
    ProtocolConfig,
    ReconciliationStats,
    Role,
    RoleState,
    RunSummary,
)
from qkd_handshake.core.constants import (
    MSG_ACCEPT_OR_ABORT,
    MSG_ANNOUNCE_BASES,
    MSG_ERROR_CORRECTION,
    MSG_ERROR_CORRECTION_STATS,
    MSG_FINAL_KEY_COMMITMENT,
    MSG_FINAL_KEY_CONFIRMED,
    MSG_MEASURED,
    MSG_PREPARED,
    MSG_QBER_REQUEST,
    MSG_QBER_RESPONSE,
    MSG_SIFTING_RESULT,
    REASON_COMMITMENT_MISMATCH,
    REASON_QBER_DISAGREEMENT,
    REASON_SIFTING_MISMATCH,
    REASON_VERIFICATION_FAILED,
)
from qkd_handshake.core.exceptions import (
    ChannelUnavailableError,
    CommitmentMismatchError,
    ProtocolError,
    ShapeMismatchError,
)
from qkd_handshake.core.messages import (
    AcceptOrAbort,
    AnnounceBases,
    ErrorCorrection,
    ErrorCorrectionStats,
    FinalKeyCommitment,
    FinalKeyConfirmed,
    Measured,
    Prepared,
    ProtocolMessage,
    QberRequest,
    QberResponse,
    SiftingResult,
    decode_message,
    encode_message,
)
from qkd_handshake.privacy.amplifier import PrivacyAmplifier
from qkd_handshake.privacy.estimation import (
    check_qber,
    compute_confidence_interval,
    count_sample_errors,
    estimate_qber,
    remove_sampled_bits,
    sample_bits,
    select_sample,
    validate_sample_indices,
)
from qkd_handshake.privacy.utils import bits_to_bytes
from qkd_handshake.quantum.sifting import extract, sift
from qkd_handshake.quantum.simulator import ChannelSimulator
from qkd_handshake.reconciliation.block_parity import BlockParityReconciler, ParityReference
from qkd_handshake.transport.channel import Message, MessageChannel
from qkd_handshake.utils.logging import get_protocol_logger
from qkd_handshake.verification.commitment import get_committer


class LocalAction(enum.Enum):
    """User-triggered actions, dispatched alongside incoming messages."""

    PREPARE = "prepare"
    MEASURE = "measure"
    ANNOUNCE_BASES = "announce_bases"
    ESTIMATE_QBER = "estimate_qber"
    CORRECT_ERRORS = "correct_errors"
    AMPLIFY = "amplify"
    ENTER_CHAT = "enter_chat"
    RESET = "reset"


@dataclass(frozen=True)
class Transition:
    """Where an event is legal and which method handles it.

    Attributes
    ----------
    roles : FrozenSet[Role]
        Roles that accept the event.
    phases : Optional[FrozenSet[Phase]]
        Phases that accept the event. None means any phase.
    handler : str
        Name of the ``ProtocolStateMachine`` method to call.
    """

    roles: FrozenSet[Role]
    phases: Optional[FrozenSet[Phase]]
    handler: str


_ALICE = frozenset({Role.ALICE})
_BOB = frozenset({Role.BOB})
_BOTH = frozenset({Role.ALICE, Role.BOB})
_ACTIVE_PHASES = frozenset(set(Phase) - TERMINAL_PHASES)


def _in(*phases: Phase) -> FrozenSet[Phase]:
    return frozenset(phases)


Event = Union[LocalAction, str]

TRANSITIONS: Dict[Event, Transition] = {
    # Local actions
    LocalAction.PREPARE: Transition(_ALICE, _in(Phase.IDLE), "_prepare"),
    LocalAction.MEASURE: Transition(_BOB, _in(Phase.IDLE), "_measure"),
    LocalAction.ANNOUNCE_BASES: Transition(
        _BOTH, _in(Phase.SIFTING, Phase.MEASURED), "_announce_bases"
    ),
    LocalAction.ESTIMATE_QBER: Transition(_ALICE, _in(Phase.QBER_CHECK), "_estimate_qber"),
    LocalAction.CORRECT_ERRORS: Transition(
        _ALICE, _in(Phase.ERROR_CORRECTION), "_correct_errors"
    ),
    LocalAction.AMPLIFY: Transition(_ALICE, _in(Phase.PRIVACY_AMPLIFICATION), "_amplify"),
    LocalAction.ENTER_CHAT: Transition(_BOTH, _in(Phase.SUCCESS), "_enter_chat"),
    LocalAction.RESET: Transition(_BOTH, None, "_reset"),
    # Incoming messages
    MSG_PREPARED: Transition(_BOB, _in(Phase.IDLE), "_on_prepared"),
    MSG_MEASURED: Transition(_ALICE, _in(Phase.PREPARED), "_on_measured"),
    MSG_ANNOUNCE_BASES: Transition(
        _BOTH, _in(Phase.SIFTING, Phase.MEASURED), "_on_announce_bases"
    ),
    MSG_SIFTING_RESULT: Transition(_ALICE, _in(Phase.SIFTING), "_on_sifting_result"),
    MSG_QBER_REQUEST: Transition(_BOB, _in(Phase.QBER_CHECK), "_on_qber_request"),
    MSG_QBER_RESPONSE: Transition(_ALICE, _in(Phase.QBER_CHECK), "_on_qber_response"),
    MSG_ACCEPT_OR_ABORT: Transition(_BOTH, _ACTIVE_PHASES, "_on_accept_or_abort"),
    MSG_ERROR_CORRECTION: Transition(
        _ALICE, _in(Phase.ERROR_CORRECTION), "_on_error_correction"
    ),
    MSG_ERROR_CORRECTION_STATS: Transition(
        _BOB, _in(Phase.ERROR_CORRECTION), "_on_error_correction_stats"
    ),
    MSG_FINAL_KEY_COMMITMENT: Transition(
        _BOB, _in(Phase.PRIVACY_AMPLIFICATION), "_on_final_key_commitment"
    ),
    MSG_FINAL_KEY_CONFIRMED: Transition(
        _ALICE, _in(Phase.PRIVACY_AMPLIFICATION), "_on_final_key_confirmed"
    ),
}


class ProtocolStateMachine:
    """One peer of the BB84 handshake.

    Parameters
    ----------
    role : Role or str
        "alice" prepares qubits and drives the post-processing; "bob"
        measures and answers.
    config : Optional[ProtocolConfig]
        Run parameters. Both peers must use the same values.
    channel : Optional[MessageChannel]
        Classical channel to the peer. The machine registers itself as the
        channel's message handler.
    rng : Optional[np.random.Generator]
        Randomness for bases, bits, sampling and the channel simulation.
    simulator : Optional[ChannelSimulator]
        Quantum channel model; built from ``rng`` and ``config.noise`` when
        omitted.

    Examples
    --------
    >>> from qkd_handshake.transport import InMemoryLink
    >>> link = InMemoryLink()
    >>> alice = ProtocolStateMachine("alice", channel=link.alice)
    >>> bob = ProtocolStateMachine("bob", channel=link.bob)
    >>> alice.dispatch(LocalAction.PREPARE)
    True
    >>> link.pump()
    1
    """

    def __init__(
        self,
        role: Union[Role, str],
        config: Optional[ProtocolConfig] = None,
        channel: Optional[MessageChannel] = None,
        rng: Optional[np.random.Generator] = None,
        simulator: Optional[ChannelSimulator] = None,
    ) -> None:
        self.role = Role(role)
        self.config = config if config is not None else ProtocolConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._simulator = (
            simulator
            if simulator is not None
            else ChannelSimulator(rng=self._rng, noise=self.config.noise)
        )
        self._reconciler = BlockParityReconciler(num_passes=self.config.num_passes)
        self._amplifier = PrivacyAmplifier(security_margin=self.config.security_margin)
        self._committer = get_committer(self.config.commitment)
        self._logger = get_protocol_logger(self.role.value)
        self.state = RoleState()

        self._channel = channel
        if channel is not None:
            channel.on_message(self.receive)

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def run_id(self) -> Optional[str]:
        return self.state.run_id

    @property
    def final_key(self):
        return list(self.state.final_key)

    @property
    def is_terminal(self) -> bool:
        return self.state.phase in TERMINAL_PHASES

    # ------------------------------------------------------------------
    # Entry points

    def dispatch(self, action: LocalAction) -> bool:
        """Apply a local action. Returns False if it was not applicable."""
        return self._transition(LocalAction(action), None)

    def receive(self, data: Message) -> bool:
        """Handle a message from the peer. Returns False if it was ignored."""
        try:
            message = decode_message(data)
        except ValueError as e:
            self._logger.warning(f"Dropping malformed message: {e}")
            return False

        adopts_run = (
            message.TYPE == MSG_PREPARED
            and self.role is Role.BOB
            and self.state.phase is Phase.IDLE
        )
        if not adopts_run and message.run_id != self.state.run_id:
            self._logger.debug(
                f"Dropping '{message.TYPE}' from stale run {message.run_id} "
                f"(current {self.state.run_id})"
            )
            return False
        return self._transition(message.TYPE, message)

    def _transition(self, event: Event, message: Optional[ProtocolMessage]) -> bool:
        rule = TRANSITIONS[event]
        name = event.name if isinstance(event, LocalAction) else event
        if self.role not in rule.roles or (
            rule.phases is not None and self.state.phase not in rule.phases
        ):
            self._logger.debug(f"Ignoring {name} as {self.role.value} in {self.state.phase.value}")
            return False

        handler: Callable = getattr(self, rule.handler)
        try:
            result = handler(message) if message is not None else handler()
        except ChannelUnavailableError as e:
            if self.state.phase is not Phase.ABORTED:
                self._abort(f"Channel unavailable: {e}", notify=False)
            raise
        except ProtocolError as e:
            self._abort(str(e) or type(e).__name__)
            return True
        return result is not False

    # ------------------------------------------------------------------
    # Helpers

    def _set_phase(self, phase: Phase) -> None:
        self._logger.info(f"{self.state.phase.value} -> {phase.value}")
        self.state.phase = phase

    def _send(self, message: ProtocolMessage) -> None:
        if self._channel is None:
            raise ChannelUnavailableError("No channel attached")
        self._channel.send_message(encode_message(message))

    def _abort(self, reason: str, notify: bool = True) -> None:
        """Converge on the aborted phase, telling the peer unless ``notify`` is off."""
        self.state.abort_reason = reason
        self.state.final_key = []
        self._set_phase(Phase.ABORTED)
        self._logger.warning(f"Handshake aborted: {reason}")
        if notify:
            self._send(
                AcceptOrAbort(
                    run_id=self.state.run_id or "",
                    accepted=False,
                    qber=self.state.qber,
                    reason=reason,
                )
            )

    def _own_bits(self):
        return self.state.bits if self.role is Role.ALICE else self.state.outcomes

    def _reconciled_key(self):
        if self.role is Role.ALICE and self.state.ec_stats is not None:
            return self.state.ec_stats.corrected_key
        return self.state.sifted_key

    def _log_qber(self, errors: int) -> None:
        size = len(self.state.sample_indices)
        if size:
            low, high = compute_confidence_interval(errors, size)
            self._logger.info(
                f"Sample QBER: {self.state.qber:.4f} ({errors}/{size}, "
                f"95% CI [{low:.4f}, {high:.4f}])"
            )

    # ------------------------------------------------------------------
    # Quantum phase

    def _prepare(self) -> None:
        count = self.config.qubit_count
        self.state.bits = self._simulator.random_bits(count)
        self.state.bases = self._simulator.random_bases(count)
        self.state.run_id = uuid.uuid4().hex
        self._set_phase(Phase.PREPARED)
        self._send(
            Prepared(
                run_id=self.state.run_id,
                num_qubits=count,
                alice_bits=list(self.state.bits),
                alice_bases=list(self.state.bases),
            )
        )

    def _on_prepared(self, message: Prepared) -> None:
        self.state.run_id = message.run_id
        if not message.num_qubits == len(message.alice_bits) == len(message.alice_bases):
            raise ShapeMismatchError(
                f"Prepared batch is inconsistent: num_qubits={message.num_qubits}, "
                f"bits={len(message.alice_bits)}, bases={len(message.alice_bases)}"
            )
        self.state.incoming_bits = list(message.alice_bits)
        self.state.incoming_bases = list(message.alice_bases)
        self.state.peer_ready = True
        self._logger.info(f"{message.num_qubits} qubits in flight for run {message.run_id}")

    def _measure(self) -> Optional[bool]:
        if not self.state.peer_ready:
            self._logger.debug("Nothing to measure yet")
            return False

        count = len(self.state.incoming_bits)
        self.state.bases = self._simulator.random_bases(count)
        result = self._simulator.transmit(
            self.state.incoming_bits,
            self.state.incoming_bases,
            self.state.bases,
            eve_enabled=self.config.eve_enabled,
        )
        self.state.outcomes = result.bob_outcomes
        self.state.eve_bases = result.eve_bases
        self.state.eve_outcomes = result.eve_outcomes
        # Alice's states are consumed by the measurement
        self.state.incoming_bits = []
        self.state.incoming_bases = []
        self._set_phase(Phase.MEASURED)
        self._send(Measured(run_id=self.state.run_id, num_qubits=count))
        return None

    def _on_measured(self, message: Measured) -> None:
        if message.num_qubits != len(self.state.bits):
            raise ShapeMismatchError(
                f"Peer measured {message.num_qubits} qubits, {len(self.state.bits)} were sent"
            )
        self._set_phase(Phase.SIFTING)

    # ------------------------------------------------------------------
    # Sifting

    def _announce_bases(self) -> Optional[bool]:
        if self.state.bases_sent:
            return False
        self._send(AnnounceBases(run_id=self.state.run_id, bases=list(self.state.bases)))
        self.state.bases_sent = True
        return None

    def _on_announce_bases(self, message: AnnounceBases) -> None:
        if not self.state.bases_sent:
            self._announce_bases()

        mask = sift(self.state.bases, message.bases)
        self.state.keep_mask = mask
        self.state.sifted_key = extract(self._own_bits(), mask)
        self.state.sifted_length = len(self.state.sifted_key)
        self._logger.info(
            f"Sifting complete: {self.state.sifted_length}/{len(mask)} positions kept"
        )

        if self.role is Role.BOB:
            self._set_phase(Phase.QBER_CHECK)
            self._send(SiftingResult(run_id=self.state.run_id, keep_mask=list(mask)))

    def _on_sifting_result(self, message: SiftingResult) -> Optional[bool]:
        if not self.state.keep_mask:
            self._logger.debug("Sifting result arrived before local sifting")
            return False
        if message.keep_mask != self.state.keep_mask:
            raise ProtocolError(REASON_SIFTING_MISMATCH)
        self._set_phase(Phase.QBER_CHECK)
        return None

    # ------------------------------------------------------------------
    # QBER estimation

    def _estimate_qber(self) -> Optional[bool]:
        if self.state.sample_indices:
            return False
        indices = select_sample(self.state.sifted_length, self.config.sample_size, self._rng)
        self.state.sample_indices = indices
        self._send(
            QberRequest(
                run_id=self.state.run_id,
                sample_indices=list(indices),
                sample_bits=sample_bits(self.state.sifted_key, indices),
            )
        )
        return None

    def _on_qber_request(self, message: QberRequest) -> None:
        indices = [int(i) for i in message.sample_indices]
        try:
            validate_sample_indices(indices, self.state.sifted_length)
        except ValueError as e:
            raise ProtocolError(f"Invalid sample request: {e}") from e

        self.state.sample_indices = indices
        own_sample = sample_bits(self.state.sifted_key, indices)
        self._send(QberResponse(run_id=self.state.run_id, sample_bits=own_sample))

        errors = count_sample_errors(message.sample_bits, own_sample)
        self.state.qber = estimate_qber(message.sample_bits, own_sample)
        self._log_qber(errors)
        check_qber(self.state.qber, self.config.qber_threshold)

        self.state.sifted_key = remove_sampled_bits(self.state.sifted_key, indices)
        self._set_phase(Phase.ERROR_CORRECTION)

        block_size = self._reconciler.block_size(self.state.qber)
        self._send(
            ErrorCorrection(
                run_id=self.state.run_id,
                block_size=block_size,
                parity_bits=self._reconciler.block_parities(self.state.sifted_key, block_size),
            )
        )

    def _on_qber_response(self, message: QberResponse) -> None:
        own_sample = sample_bits(self.state.sifted_key, self.state.sample_indices)
        errors = count_sample_errors(own_sample, message.sample_bits)
        self.state.qber = estimate_qber(own_sample, message.sample_bits)
        self._log_qber(errors)
        check_qber(self.state.qber, self.config.qber_threshold)

        self.state.sifted_key = remove_sampled_bits(
            self.state.sifted_key, self.state.sample_indices
        )
        self._set_phase(Phase.ERROR_CORRECTION)
        self._send(AcceptOrAbort(run_id=self.state.run_id, accepted=True, qber=self.state.qber))

    def _on_accept_or_abort(self, message: AcceptOrAbort) -> Optional[bool]:
        if not message.accepted:
            self._abort(message.reason or "Aborted by peer", notify=False)
            return None
        if self.role is Role.ALICE:
            return False
        if (
            self.state.qber is None
            or message.qber is None
            or not math.isclose(message.qber, self.state.qber)
        ):
            raise ProtocolError(REASON_QBER_DISAGREEMENT)
        return None

    # ------------------------------------------------------------------
    # Reconciliation

    def _on_error_correction(self, message: ErrorCorrection) -> None:
        self.state.peer_block_size = message.block_size
        self.state.peer_parities = list(message.parity_bits)

    def _correct_errors(self) -> Optional[bool]:
        if self.state.peer_parities is None:
            self._logger.debug("Waiting for peer parities")
            return False

        reference = ParityReference(self.state.peer_block_size, self.state.peer_parities)
        stats = self._reconciler.reconcile(self.state.sifted_key, reference, self.state.qber)
        self.state.ec_stats = stats
        # Only parities are known here, so the count is of mismatching blocks
        self._logger.info(
            f"Reconciliation: {stats.initial_error_count} mismatching blocks in the "
            f"first pass, {stats.parity_rounds_executed} passes, "
            f"{stats.bits_revealed} bits revealed"
        )
        self._set_phase(Phase.PRIVACY_AMPLIFICATION)
        self._send(ErrorCorrectionStats(run_id=self.state.run_id, stats=stats.to_payload()))
        return None

    def _on_error_correction_stats(self, message: ErrorCorrectionStats) -> None:
        stats = ReconciliationStats.from_payload(message.stats)
        if len(stats.corrected_key) != len(self.state.sifted_key):
            raise ShapeMismatchError(
                f"Corrected key has {len(stats.corrected_key)} bits, "
                f"expected {len(self.state.sifted_key)}"
            )
        changed = count_sample_errors(self.state.sifted_key, stats.corrected_key)
        self._logger.info(
            f"Adopting corrected key: {changed} of {len(stats.corrected_key)} bits differ "
            f"from own key"
        )
        self.state.sifted_key = list(stats.corrected_key)
        self.state.ec_stats = stats
        self._set_phase(Phase.PRIVACY_AMPLIFICATION)

    # ------------------------------------------------------------------
    # Amplification and confirmation

    def _amplify_own_key(self) -> None:
        pa_stats, final_key = self._amplifier.amplify(
            self._reconciled_key(),
            self.state.qber,
            self.state.ec_stats.bits_revealed,
        )
        self.state.pa_stats = pa_stats
        self.state.final_key = final_key
        self._logger.info(
            f"Privacy amplification: {pa_stats.input_length} -> {pa_stats.output_length} bits"
        )

    def _amplify(self) -> Optional[bool]:
        if self.state.commitment_sent:
            return False
        self._amplify_own_key()
        digest = self._committer.commit(self.state.final_key)
        self._send(FinalKeyCommitment(run_id=self.state.run_id, digest=digest))
        self.state.commitment_sent = True
        return None

    def _on_final_key_commitment(self, message: FinalKeyCommitment) -> None:
        self._amplify_own_key()
        match = self._committer.verify(self.state.final_key, message.digest)
        self._send(FinalKeyConfirmed(run_id=self.state.run_id, match=match))
        if match:
            self._set_phase(Phase.SUCCESS)
        else:
            raise CommitmentMismatchError(REASON_VERIFICATION_FAILED)

    def _on_final_key_confirmed(self, message: FinalKeyConfirmed) -> Optional[bool]:
        if not self.state.commitment_sent:
            return False
        if message.match:
            self._set_phase(Phase.SUCCESS)
        else:
            raise CommitmentMismatchError(REASON_COMMITMENT_MISMATCH)
        return None

    def _enter_chat(self) -> None:
        self._set_phase(Phase.CHAT)

    def _reset(self) -> None:
        self._logger.info(f"Reset from {self.state.phase.value}")
        self.state = RoleState()

    # ------------------------------------------------------------------
    # Results

    def summary(self) -> RunSummary:
        """Condensed view of the current run."""
        return RunSummary(
            raw_length=len(self._own_bits()),
            sifted_length=self.state.sifted_length,
            sample_size=len(self.state.sample_indices),
            qber=self.state.qber,
            threshold=self.config.qber_threshold,
            aborted=self.state.phase is Phase.ABORTED,
            ec_stats=self.state.ec_stats,
            pa_stats=self.state.pa_stats,
            final_key_length=len(self.state.final_key),
            abort_reason=self.state.abort_reason,
        )

    def final_key_bytes(self) -> bytes:
        """Final key packed MSB first, for the chat cipher layer.

        Raises
        ------
        ProtocolError
            If the handshake has not succeeded.
        """
        if self.state.phase not in (Phase.SUCCESS, Phase.CHAT):
            raise ProtocolError(
                f"No final key available in phase {self.state.phase.value}"
            )
        return bits_to_bytes(self.state.final_key)
