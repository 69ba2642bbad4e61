"""Tests for the simulation engine."""

import random
from datetime import datetime

import pytest

from entropy_protocol.engine.bots import BotMove, idle_policy, make_random_policy, random_bot_policy
from entropy_protocol.engine.simulation import (
    REASON_BLACKOUT,
    REASON_COLLAPSE,
    REASON_RIOTS,
    MissingTargetError,
    UnknownSectorError,
    apply_action,
    apply_decay,
    apply_event_impact,
    check_game_over,
    event_chance,
    roll_event,
)
from entropy_protocol.engine.targeting import resolve_target
from entropy_protocol.state.catalog import ACTIONS, DISASTER_TEMPLATES, get_action
from entropy_protocol.state.schema import GameEvent, Player, RoleType, Severity, SystemState


def with_sector(state: SystemState, sector_id: str, **update) -> SystemState:
    return state.model_copy(update={
        "sectors": tuple(
            s.model_copy(update=update) if s.id == sector_id else s
            for s in state.sectors
        ),
    })


def critical_event(sector_id: str = "s1") -> GameEvent:
    return GameEvent(
        id="evt1",
        title="Reactor Leak",
        description="Radiation spike detected.",
        severity=Severity.CRITICAL,
        target_sector_id=sector_id,
        timestamp=datetime(2026, 1, 1),
    )


def assert_in_range(state: SystemState):
    for value in (state.global_panic, state.global_power, state.global_network):
        assert 0 <= value <= 100
    for sector in state.sectors:
        assert 0 <= sector.structural_integrity <= 100
        assert 0 <= sector.hazard_level <= 100


class TestDecay:
    """Test one simulated second of entropy."""

    def test_fresh_city(self, system):
        """Power drops 0.05 and panic rises 0.1 on an intact city."""
        result = apply_decay(system)

        assert result.global_power == pytest.approx(99.95)
        assert result.global_panic == pytest.approx(0.1)
        assert result.global_network == 100

    def test_damaged_sector_drains_power(self, system):
        """Integrity below 50 costs extra power."""
        state = with_sector(system, "s4", structural_integrity=40.0)
        result = apply_decay(state)

        assert result.global_power == pytest.approx(100 - 0.05 - 0.02)

    def test_hazard_erodes_structure_and_calm(self, system):
        """A hazardous sector loses structure and raises panic."""
        state = with_sector(system, "s2", hazard_level=10.0)
        result = apply_decay(state)

        assert result.sector("s2").structural_integrity == pytest.approx(99.9)
        assert result.global_panic == pytest.approx(0.15)

    def test_does_not_mutate_input(self, system):
        """Input snapshot is untouched."""
        apply_decay(system)
        assert system.global_power == 100
        assert system.global_panic == 0

    def test_clamps_at_zero(self, system):
        """Power never goes negative."""
        state = system.model_copy(update={"global_power": 0.01})
        assert apply_decay(state).global_power == 0


class TestEvents:
    """Test disaster rolls and impact."""

    def test_event_chance_grows_with_round(self):
        """Chance is 0.05 + 0.02 per round, capped at 1."""
        assert event_chance(1) == pytest.approx(0.07)
        assert event_chance(10) == pytest.approx(0.25)
        assert event_chance(100) == 1.0

    def test_roll_miss(self, system, quiet_rng):
        """A roll above the chance yields nothing."""
        assert roll_event(1, system.sectors, quiet_rng) is None

    def test_roll_empty_sectors(self):
        """No sectors, no event."""
        assert roll_event(50, (), random.Random(1)) is None

    def test_roll_targets_matching_category(self, system):
        """Events land on a sector of the template's category."""
        rng = random.Random(7)
        by_title = {t.title: t for t in DISASTER_TEMPLATES}
        seen = 0
        for _ in range(200):
            event = roll_event(100, system.sectors, rng)
            assert event is not None
            template = by_title[event.title]
            sector = system.sector(event.target_sector_id)
            assert sector.category == template.target
            assert event.severity == template.severity
            seen += 1
        assert seen == 200

    def test_roll_falls_back_to_any_sector(self, system):
        """Without a matching category the target is any sector."""
        sectors = tuple(s for s in system.sectors if s.category.value == "residential")
        rng = random.Random(3)
        for _ in range(50):
            event = roll_event(100, sectors, rng)
            assert event.target_sector_id in {"s4", "s5"}

    def test_roll_uses_given_timestamp(self, system):
        """Timestamp comes from `now` when provided."""
        now = datetime(2026, 5, 1, 12, 0)
        event = roll_event(100, system.sectors, random.Random(1), now=now)
        assert event.timestamp == now

    def test_event_ids_are_unique(self, system):
        """Every event gets a fresh id."""
        rng = random.Random(2)
        ids = {roll_event(100, system.sectors, rng).id for _ in range(30)}
        assert len(ids) == 30

    def test_critical_impact(self, system):
        """Critical event on a fresh sector: 80 integrity, 30 hazard, panic +5."""
        result = apply_event_impact(system, critical_event("s1"))
        sector = result.sector("s1")

        assert sector.structural_integrity == 80
        assert sector.hazard_level == 30
        assert sector.active_event_id == "evt1"
        assert result.global_panic == 5

    def test_standard_impact(self, system):
        """Non-critical events hit for 10 and 15."""
        event = critical_event("s4").model_copy(update={"severity": Severity.MEDIUM})
        sector = apply_event_impact(system, event).sector("s4")

        assert sector.structural_integrity == 90
        assert sector.hazard_level == 15

    def test_impact_leaves_other_sectors(self, system):
        """Only the target sector changes."""
        result = apply_event_impact(system, critical_event("s1"))
        assert result.sectors[1:] == system.sectors[1:]


class TestActions:
    """Test action resolution."""

    def test_lockdown(self, system):
        """Lockdown from panic 50: panic 25, power 80."""
        state = system.model_copy(update={"global_panic": 50.0})
        result = apply_action(state, get_action("cmd_lockdown"))

        assert result.global_panic == 25
        assert result.global_power == 80

    def test_rally_raises_every_sector(self, system):
        """Rally adds 5 integrity everywhere, capped at 100."""
        state = with_sector(system, "s3", structural_integrity=50.0)
        result = apply_action(state, get_action("cmd_rally"))

        assert result.sector("s3").structural_integrity == 55
        assert result.sector("s1").structural_integrity == 100

    def test_overcharge_clamps(self, system):
        """Power cannot exceed 100."""
        state = system.model_copy(update={"global_power": 90.0})
        assert apply_action(state, get_action("eng_overcharge")).global_power == 100

    def test_reboot_restores_network(self, system):
        state = system.model_copy(update={"global_network": 12.0})
        assert apply_action(state, get_action("com_reboot")).global_network == 100

    def test_broadcast_and_supply(self, system):
        state = system.model_copy(update={"global_panic": 30.0, "global_power": 50.0})
        assert apply_action(state, get_action("com_broadcast")).global_panic == 20
        assert apply_action(state, get_action("log_supply")).global_power == 55

    def test_reinforce(self, system):
        """Reinforce adds 25 integrity to the target."""
        state = with_sector(system, "s7", structural_integrity=30.0)
        result = apply_action(state, get_action("eng_reinforce"), "s7")
        assert result.sector("s7").structural_integrity == 55

    def test_cleanse_and_quarantine(self, system):
        state = with_sector(system, "s2", hazard_level=50.0)

        cleansed = apply_action(state, get_action("bio_cleanse"), "s2")
        assert cleansed.sector("s2").hazard_level == 10

        quarantined = apply_action(state, get_action("bio_quarantine"), "s2")
        assert quarantined.sector("s2").hazard_level == 40
        assert quarantined.global_panic == 5

    def test_suppress_and_reroute(self, system):
        state = with_sector(system.model_copy(update={"global_panic": 20.0}), "s4",
                            structural_integrity=60.0, hazard_level=3.0)

        assert apply_action(state, get_action("sec_suppress"), "s4").global_panic == 15

        rerouted = apply_action(state, get_action("log_reroute"), "s4").sector("s4")
        assert rerouted.structural_integrity == 65
        assert rerouted.hazard_level == 0

    def test_checkpoint_is_noop(self, system):
        """Secure Checkpoint has no mechanical effect."""
        assert apply_action(system, get_action("sec_checkpoint"), "s4") == system

    def test_unknown_action_still_pays_cost(self, system):
        """Unlisted ids do nothing except pay their cost."""
        custom = get_action("cmd_lockdown").model_copy(update={"id": "cmd_unknown"})
        result = apply_action(system, custom)

        assert result.global_power == 80
        assert result.global_panic == 0

    def test_sector_action_requires_target(self, system):
        with pytest.raises(MissingTargetError):
            apply_action(system, get_action("eng_reinforce"))

    def test_unknown_sector(self, system):
        with pytest.raises(UnknownSectorError):
            apply_action(system, get_action("eng_reinforce"), "s99")

    def test_cost_clamps_at_zero(self, system):
        """Lockdown with 10 power leaves 0, not -10."""
        state = system.model_copy(update={"global_power": 10.0})
        assert apply_action(state, get_action("cmd_lockdown")).global_power == 0


class TestClamping:
    """Test that every operation keeps values in range."""

    def test_long_random_sequence(self, system):
        """Random mix of decay, events and actions stays within [0, 100]."""
        rng = random.Random(99)
        state = system
        for _ in range(500):
            roll = rng.random()
            if roll < 0.4:
                state = apply_decay(state)
            elif roll < 0.7:
                event = roll_event(100, state.sectors, rng)
                state = apply_event_impact(state, event)
            else:
                action = rng.choice(ACTIONS)
                target = rng.choice(state.sectors).id
                state = apply_action(state, action, target)
            assert_in_range(state)


class TestGameOver:
    """Test failure conditions."""

    def test_healthy_city(self, system):
        assert check_game_over(system) == (False, None)

    def test_collapse_precedence(self, system):
        """Three collapsed sectors and a blackout report collapse."""
        state = system.model_copy(update={"global_power": 0.0})
        for sector_id in ("s1", "s2", "s3"):
            state = with_sector(state, sector_id, structural_integrity=0.0)

        result = check_game_over(state)
        assert result.is_over
        assert result.reason == REASON_COLLAPSE

    def test_two_collapsed_is_not_over(self, system):
        state = with_sector(with_sector(system, "s1", structural_integrity=0.0),
                            "s2", structural_integrity=0.0)
        assert not check_game_over(state).is_over

    def test_blackout(self, system):
        state = system.model_copy(update={"global_power": 0.0})
        assert check_game_over(state).reason == REASON_BLACKOUT

    def test_riots(self, system):
        state = system.model_copy(update={"global_panic": 100.0})
        assert check_game_over(state).reason == REASON_RIOTS

    def test_pure(self, system):
        """Same input, same answer, input untouched."""
        state = system.model_copy(update={"global_power": 0.0})
        assert check_game_over(state) == check_game_over(state)
        assert state.global_power == 0


class TestTargeting:
    """Test default target selection."""

    def test_engineer_picks_weakest(self, system):
        state = with_sector(system, "s6", structural_integrity=20.0)
        assert resolve_target(get_action("eng_reinforce"), state.sectors) == "s6"

    def test_biosec_picks_most_hazardous(self, system):
        state = with_sector(system, "s8", hazard_level=70.0)
        assert resolve_target(get_action("bio_cleanse"), state.sectors) == "s8"

    def test_ties_break_by_order(self, system):
        """All equal: the first sector wins."""
        assert resolve_target(get_action("eng_reinforce"), system.sectors) == "s1"
        assert resolve_target(get_action("bio_cleanse"), system.sectors) == "s1"

    def test_other_roles_pick_first(self, system):
        state = with_sector(system, "s6", structural_integrity=20.0)
        assert resolve_target(get_action("sec_suppress"), state.sectors) == "s1"

    def test_global_action_has_no_target(self, system):
        assert resolve_target(get_action("cmd_lockdown"), system.sectors) is None

    def test_role_overrides_heuristic(self, system):
        state = with_sector(system, "s6", structural_integrity=20.0)
        action = get_action("log_reroute")
        assert resolve_target(action, state.sectors, RoleType.ENGINEER) == "s6"


class TestBots:
    """Test automated player policies."""

    def test_random_policy_acts_with_role_actions(self, system):
        bot = Player(id="b", name="UNIT-1", role=RoleType.BIO_SEC, is_automated=True)
        rng = random.Random(5)
        moves = [random_bot_policy(bot, system, rng, chance=1.0) for _ in range(20)]

        assert all(isinstance(m, BotMove) for m in moves)
        assert {m.action.role for m in moves} == {RoleType.BIO_SEC}
        assert all(m.target_sector_id is not None for m in moves)

    def test_random_policy_respects_chance(self, system, quiet_rng):
        bot = Player(id="b", name="UNIT-1", role=RoleType.COMMS, is_automated=True)
        policy = make_random_policy(0.1)
        assert policy(bot, system, quiet_rng) is None

    def test_idle_policy(self, system, rng):
        bot = Player(id="b", name="UNIT-1", role=RoleType.COMMS, is_automated=True)
        assert idle_policy(bot, system, rng) is None
