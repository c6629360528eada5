#!/usr/bin/env python3
"""
Behavioral Match Ranking Demo

Demonstrates the complete pipeline on a small in-memory population:
1. Record swipes, views, messages and a paid interaction
2. Refresh the behavior profile and learn preferences
3. Heat the viewer up
4. Rank a feed page and inspect one score breakdown
5. Run the metrics rollup and health check

Usage:
    python demo.py [viewer_id]
    python demo.py  # Uses "viewer"
"""

import random
import sys
from datetime import timedelta

from match_engine.engine import MatchEngine
from match_engine.models.heating_state import HeatingTrigger
from match_engine.models.user import GeoPoint, UserRecord
from match_engine.utils.time_utils import utc_now

HOME = GeoPoint(latitude=40.7128, longitude=-74.0060)
BODY_TYPES = ['athletic', 'slim', 'average', 'curvy']
STYLES = ['casual', 'classic', 'sporty', 'artsy']
INTERESTS = ['hiking', 'music', 'travel', 'cooking', 'art', 'gaming', 'yoga']


def seed_users(rng: random.Random, count: int = 80):
    """Viewer plus `count` candidates scattered around the city."""
    now = utc_now()
    users = [UserRecord(
        user_id='viewer',
        age=30,
        location=HOME,
        photo_count=4,
        bio="Coffee, trails and live music.",
        interests=['hiking', 'music'],
        created_at=now - timedelta(days=90),
        last_active_at=now,
    )]
    for i in range(count):
        users.append(UserRecord(
            user_id=f"user-{i:03d}",
            age=rng.randint(22, 45),
            location=GeoPoint(
                latitude=HOME.latitude + rng.uniform(-0.3, 0.3),
                longitude=HOME.longitude + rng.uniform(-0.3, 0.3),
            ),
            photo_count=rng.randint(0, 6),
            bio=rng.choice([None, "Here for something real."]),
            interests=rng.sample(INTERESTS, rng.randint(0, 4)),
            body_type=rng.choice(BODY_TYPES),
            style=rng.choice(STYLES),
            is_royal=(i % 25 == 0),
            created_at=now - timedelta(days=rng.randint(1, 400)),
            last_active_at=now - timedelta(hours=rng.randint(0, 24 * 40)),
        ))
    return users


def main(viewer_id: str = 'viewer'):
    """Run the demo pipeline."""
    print("=" * 50)
    print("Behavioral Match Ranking Demo")
    print("=" * 50)
    print()

    rng = random.Random(7)
    users = seed_users(rng)
    engine = MatchEngine.in_memory(users=users)

    if engine.user_store.get_user(viewer_id) is None:
        print(f"Error: Unknown viewer: {viewer_id}")
        return 1

    candidates = [u for u in users if u.user_id != viewer_id]

    # =========================================================================
    # Step 1: Record signals
    # =========================================================================
    print("[1] Recording signals...")

    for candidate in candidates:
        liked = 27 <= candidate.age <= 33
        engine.track_profile_view(viewer_id, candidate.user_id, 5200 if liked else 1800)
        engine.track_swipe(
            viewer_id, candidate.user_id,
            'right' if liked else 'left',
            view_duration_ms=5200 if liked else 700,
        )
        # Some candidates like the viewer back, and a few reply to messages
        if rng.random() < 0.4:
            engine.track_swipe(candidate.user_id, viewer_id, 'right')
        if liked and rng.random() < 0.5:
            engine.track_message(candidate.user_id, viewer_id, is_reply=False, message_length=42)
            engine.track_message(viewer_id, candidate.user_id, is_reply=True, message_length=18)

    engine.track_paid_interaction(viewer_id, candidates[0].user_id, 'gift', '4.99')
    engine.wait_for_refreshes(timeout=10)
    print(f"    -> Signals recorded: {len(engine.signal_store)}")

    # =========================================================================
    # Step 2: Behavior profile and learned preferences
    # =========================================================================
    print()
    print("[2] Behavior profile...")

    profile = engine.refresh_behavior_profile(viewer_id)
    print(f"    -> Swipes: {profile.total_swipes} "
          f"(right rate {profile.swipe_right_rate:.0%})")
    print(f"    -> Matches: {profile.total_matches} "
          f"(conversion {profile.match_conversion_rate:.0%})")
    print(f"    -> Response rate: {profile.message_response_rate:.0%}")

    prefs = engine.get_learned_preferences(viewer_id)
    if prefs is None:
        print("    -> Not enough swipes for learned preferences yet")
    else:
        age = prefs.age_range
        print(f"    -> Learned age range: {age.min_age}-{age.max_age}" if age else
              "    -> No age preference")
        print(f"    -> Confidence: {prefs.confidence_level:.2f}")

    # =========================================================================
    # Step 3: Heating
    # =========================================================================
    print()
    print("[3] Heating...")

    heating = engine.activate_heating(viewer_id, HeatingTrigger.MATCH_RECEIVED)
    print(f"    -> Heat level: {heating.current_heat:.1f} "
          f"(multiplier {heating.multiplier():.2f}x)")

    # =========================================================================
    # Step 4: Feed
    # =========================================================================
    print()
    print("[4] Feed...")

    page = engine.get_feed(viewer_id, limit=10)
    for i, score in enumerate(page.candidates, start=1):
        print(f"    {i:2d}. {score.candidate_id}  {score.final_score:6.2f}  "
              f"[{score.candidate_tier.value}]")
    print(f"    -> Next cursor: {page.next_cursor}")

    if page.candidates:
        top = engine.preview_ranking(viewer_id, page.candidates[0].candidate_id)
        print()
        print(f"    Breakdown for {top.candidate_id}:")
        for name, value in top.sub_scores_ranked:
            print(f"      {name:<18} {value:6.2f}")

    # =========================================================================
    # Step 5: Metrics
    # =========================================================================
    print()
    print("[5] Engine health...")

    engine.batch_refresh_profiles(u.user_id for u in candidates)
    engine.run_metrics_rollup()
    health = engine.get_engine_health()
    print(f"    -> Healthy: {health.healthy}")
    for issue in health.issues:
        print(f"    -> {issue}")

    engine.close()
    print()
    print("=" * 50)
    print("Demo complete!")
    print("=" * 50)
    return 0


if __name__ == "__main__":
    viewer = sys.argv[1] if len(sys.argv) > 1 else 'viewer'
    sys.exit(main(viewer))
