from __future__ import annotations

import unittest

SHOW = r"D:\TV\Show\S01E01.mkv"
NEXT = r"D:\TV\Show\S01E02.mkv"


class FakeClock:
    """Mock time source for testing time-based logic."""

    def __init__(self) -> None:
        self.t = 100.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


class FakeChannel:
    def __init__(self) -> None:
        self.calls: list[tuple[str, float]] = []

    def send_command(self, command_id: int) -> None:
        self.calls.append(("command", command_id))

    def send_seek_percent(self, percent: float) -> None:
        self.calls.append(("seek", percent))


def snap(pos_ms: int, *, path: str = SHOW, dur_ms: int = 60_000, playing: bool = True):
    from mpcremote.core.models import PlaybackSnapshot

    return PlaybackSnapshot(file_path=path, position_ms=pos_ms, duration_ms=dur_ms, is_playing=playing)


class DetectorTestCase(unittest.TestCase):
    def make(self, *, head: str = "", tail: str = "", folder: str = ""):
        from mpcremote.core import timespec
        from mpcremote.core.detector import SkipDetector
        from mpcremote.core.rules import SkipRule

        rule = SkipRule(folder=folder, head=timespec.parse(head), tail=timespec.parse(tail))
        self.lookups: list[str] = []

        def lookup(path: str):
            from mpcremote.core.paths import folder_of

            self.lookups.append(path)
            return rule if rule.applies_to(folder_of(path)) else None

        self.clock = FakeClock()
        self.channel = FakeChannel()
        return SkipDetector(rule_lookup=lookup, channel=self.channel, time_fn=self.clock.now)


class NewFileTests(DetectorTestCase):
    def test_head_range_on_file_start_seeks_once(self) -> None:
        det = self.make(head="00:00:10-00:00:20")

        action = det.process(snap(200))

        self.assertEqual(len(self.channel.calls), 1)
        kind, percent = self.channel.calls[0]
        self.assertEqual(kind, "seek")
        self.assertAlmostEqual(percent, 33.33, places=2)
        self.assertEqual(action.kind, "seek")
        self.assertEqual(action.reason, "new_file_head")
        self.assertEqual(action.target_ms, 20_000)
        self.assertEqual(det.phase, "awaiting_confirmation")

        # Echoes inside the settle window are ignored.
        self.clock.advance(0.2)
        self.assertIsNone(det.process(snap(300)))
        self.assertEqual(len(self.channel.calls), 1)

    def test_head_point_on_file_start(self) -> None:
        det = self.make(head="00:01:30")
        action = det.process(snap(0, dur_ms=1_440_000))
        self.assertEqual(action.target_ms, 90_000)
        self.assertAlmostEqual(self.channel.calls[0][1], 6.25)

    def test_new_file_past_start_window_only_records(self) -> None:
        det = self.make(head="00:00:10-00:00:20")
        self.assertIsNone(det.process(snap(600)))
        self.assertEqual(self.channel.calls, [])
        self.assertEqual(det.state.last_file_path, SHOW)
        self.assertEqual(det.state.last_position_ms, 600)

    def test_head_behind_position_is_never_a_backward_seek(self) -> None:
        det = self.make(head="0")
        self.assertIsNone(det.process(snap(100)))
        self.assertEqual(self.channel.calls, [])

    def test_no_matching_rule(self) -> None:
        det = self.make(head="00:00:10-00:00:20", folder="Other")
        self.assertIsNone(det.process(snap(100)))
        self.assertIsNone(det.process(snap(1_100)))
        self.assertEqual(self.channel.calls, [])
        self.assertEqual(det.state.last_position_ms, 1_100)

    def test_path_change_is_a_new_file(self) -> None:
        det = self.make(head="00:00:10-00:00:20")
        det.process(snap(200))
        self.clock.advance(1.0)
        det.process(snap(20_500))
        self.clock.advance(1.0)

        action = det.process(snap(100, path=NEXT))
        self.assertEqual(action.reason, "new_file_head")
        self.assertEqual(det.state.last_file_path, NEXT)
        self.assertEqual(len(self.channel.calls), 2)


class ManualSeekTests(DetectorTestCase):
    def test_large_jump_resets_without_skip(self) -> None:
        det = self.make(tail="00:00:50")
        det.process(snap(5_000))
        self.clock.advance(1.0)

        # User drags past the tail point: no crossing is reported for a jump.
        self.assertIsNone(det.process(snap(55_000)))
        self.assertEqual(self.channel.calls, [])
        self.assertEqual(det.state.last_position_ms, 55_000)

    def test_jump_back_to_start_applies_head(self) -> None:
        det = self.make(head="00:00:10-00:00:20")
        det.process(snap(30_000))
        self.clock.advance(1.0)

        action = det.process(snap(300))
        self.assertIsNotNone(action)
        self.assertEqual(action.reason, "new_file_head")
        self.assertEqual(len(self.channel.calls), 1)

    def test_small_movement_is_steady_state(self) -> None:
        det = self.make()
        det.process(snap(5_000))
        self.clock.advance(1.0)
        det.process(snap(14_000))
        self.assertEqual(det.state.last_position_ms, 14_000)
        self.assertEqual(self.channel.calls, [])


class SteadyStateTests(DetectorTestCase):
    def test_head_range_entered_mid_playback(self) -> None:
        det = self.make(head="00:00:10-00:00:20")
        det.process(snap(9_000))
        self.clock.advance(1.0)

        action = det.process(snap(10_000))
        self.assertEqual(action.reason, "head")
        self.assertEqual(action.target_ms, 20_000)
        self.assertEqual(self.channel.calls, [("seek", 20_000 / 60_000 * 100)])

    def test_head_point_only_inside_early_window(self) -> None:
        det = self.make(head="00:00:30")
        det.process(snap(1_000))  # new file, past start window
        self.clock.advance(1.0)
        action = det.process(snap(2_000))
        self.assertEqual(action.reason, "head")
        self.assertEqual(action.target_ms, 30_000)

        det2 = self.make(head="00:00:30")
        det2.process(snap(6_000))
        self.clock.advance(1.0)
        self.assertIsNone(det2.process(snap(7_000)))
        self.assertEqual(self.channel.calls, [])

    def test_tail_point_crossing_fires_next_once(self) -> None:
        det = self.make(tail="00:00:50")

        self.assertIsNone(det.process(snap(49_000)))
        self.clock.advance(1.0)
        action = det.process(snap(51_000))
        self.assertEqual(action.kind, "advance")
        self.assertEqual(action.command_id, 920)
        self.assertEqual(self.channel.calls, [("command", 920)])

        self.clock.advance(1.0)
        self.assertIsNone(det.process(snap(52_000)))
        self.assertEqual(self.channel.calls, [("command", 920)])

    def test_tail_point_fires_when_landing_exactly_on_it(self) -> None:
        det = self.make(tail="00:00:50")
        det.process(snap(49_500))
        self.clock.advance(1.0)
        self.assertIsNotNone(det.process(snap(50_000)))

    def test_tail_point_not_fired_by_containment_alone(self) -> None:
        det = self.make(tail="00:00:50")
        det.process(snap(51_000))
        self.clock.advance(1.0)
        self.assertIsNone(det.process(snap(52_000)))
        self.assertEqual(self.channel.calls, [])

    def test_tail_range_seeks_within_file(self) -> None:
        det = self.make(tail="00:00:40-00:00:55")
        det.process(snap(39_500))
        self.clock.advance(1.0)

        action = det.process(snap(40_500))
        self.assertEqual(action.kind, "seek")
        self.assertEqual(action.reason, "tail")
        self.assertEqual(action.target_ms, 55_000)
        self.assertEqual(self.channel.calls[0][0], "seek")

    def test_tail_range_past_duration_is_clamped(self) -> None:
        det = self.make(tail="00:00:40-00:02:00")
        det.process(snap(39_500))
        self.clock.advance(1.0)
        action = det.process(snap(40_500))
        self.assertEqual(action.percent, 100.0)

    def test_head_wins_over_tail_in_one_snapshot(self) -> None:
        det = self.make(head="00:00:10-00:00:30", tail="00:00:20-00:00:40")
        det.process(snap(19_000))
        self.clock.advance(1.0)
        # Inside both ranges without a jump.
        action = det.process(snap(21_000))
        self.assertIsNotNone(action)
        self.assertEqual(action.reason, "head")
        self.assertEqual(len(self.channel.calls), 1)


class CooldownTests(DetectorTestCase):
    def test_snapshots_inside_settle_window_do_not_repeat(self) -> None:
        det = self.make(head="00:00:10-00:00:20")
        det.process(snap(9_500))
        self.clock.advance(1.0)
        det.process(snap(10_500))
        self.assertEqual(len(self.channel.calls), 1)

        # Player has not applied the seek yet; still inside the range.
        for _ in range(4):
            self.clock.advance(0.1)
            self.assertIsNone(det.process(snap(10_600)))
        self.assertEqual(len(self.channel.calls), 1)

        # After the settle window the same condition is evaluated again.
        self.clock.advance(0.2)
        self.assertIsNotNone(det.process(snap(10_700)))
        self.assertEqual(len(self.channel.calls), 2)

    def test_advance_settles_longer_than_seek(self) -> None:
        det = self.make(tail="00:00:50")
        det.process(snap(49_000))
        self.clock.advance(1.0)
        det.process(snap(51_000))

        self.clock.advance(0.6)
        self.assertEqual(det.phase, "awaiting_confirmation")
        self.clock.advance(0.5)
        self.assertEqual(det.phase, "idle")

    def test_ignored_snapshots_do_not_touch_state(self) -> None:
        det = self.make(tail="00:00:50")
        det.process(snap(40_000))
        before = (det.state.last_file_path, det.state.last_position_ms)

        det.process(snap(45_000, playing=False))
        det.process(snap(45_000, dur_ms=0))
        self.assertEqual((det.state.last_file_path, det.state.last_position_ms), before)

    def test_reset_forgets_file(self) -> None:
        det = self.make()
        det.process(snap(40_000))
        det.reset()
        self.assertEqual(det.state.last_file_path, "")
        self.assertEqual(det.phase, "idle")


class IndependenceTests(DetectorTestCase):
    def test_two_detectors_do_not_share_state(self) -> None:
        from mpcremote.core.detector import SkipDetector

        det = self.make(head="00:00:10-00:00:20")
        other = SkipDetector(rule_lookup=lambda p: None, channel=FakeChannel(), time_fn=self.clock.now)
        det.process(snap(200))
        self.assertEqual(other.state.last_file_path, "")
        self.assertEqual(other.phase, "idle")


if __name__ == "__main__":
    unittest.main()
