"""
Agent-context projections of application state and long-term memory.

Output is a plain newline-delimited prompt fragment with fixed section
headers. Long lists and long text are truncated so the block stays bounded.
"""

from typing import List, Sequence

from navi.domain.models.app_state import AppState, QuestStatus
from navi.domain.models.memory import CompressedMemoryBlock

VAULT_LIMIT = 20
VAULT_CONTENT_CHARS = 200
PENDING_QUEST_LIMIT = 10
COMPLETED_QUEST_LIMIT = 10
JOURNAL_LIMIT = 5
JOURNAL_TEXT_CHARS = 150
CHECK_IN_LIMIT = 5
LTM_DETAIL_LIMIT = 15
LTM_DETAIL_CHARS = 200
COMPACT_DETAIL_CHARS = 150


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _quest_lines(state: AppState) -> List[str]:
    pending = state.quests_with_status(QuestStatus.PENDING)
    active = state.quests_with_status(QuestStatus.ACTIVE)
    completed = state.quests_with_status(QuestStatus.COMPLETED)
    declined = state.quests_with_status(QuestStatus.DECLINED)

    lines = [
        f"--- QUESTS ({len(state.quests)} total) ---",
        f"Pending: {len(pending)} | Active: {len(active)} | Completed: {len(completed)} | Declined: {len(declined)}",
    ]

    if active:
        lines += ["", "[ACTIVE QUESTS]"]
        for q in active:
            done = sum(1 for m in q.milestones if m.completed)
            lines.append(f'  * "{q.title}" [{q.category}/{q.difficulty}] XP:{q.xp_reward}')
            lines.append(f"    {q.description}")
            lines.append(f"    Progress: {done}/{len(q.milestones)} milestones")
            for m in q.milestones:
                lines.append(f"      {'[x]' if m.completed else '[ ]'} {m.description}")

    if pending:
        lines += ["", "[PENDING QUESTS]"]
        for q in pending[:PENDING_QUEST_LIMIT]:
            lines.append(f'  * "{q.title}" [{q.category}/{q.difficulty}] XP:{q.xp_reward}')
            lines.append(f"    {q.description}")

    if completed:
        lines += ["", f"[COMPLETED QUESTS - last {COMPLETED_QUEST_LIMIT} of {len(completed)}]"]
        for q in completed[-COMPLETED_QUEST_LIMIT:]:
            lines.append(
                f'  * "{q.title}" [{q.category}] XP:{q.xp_reward} completed:{q.completed_at or "unknown"}'
            )

    lines.append("")
    return lines


def _vault_lines(state: AppState) -> List[str]:
    lines = [f"--- VAULT ({len(state.vault)} entries) ---"]
    for v in state.vault[:VAULT_LIMIT]:
        lines.append(f'  [{v.type.upper()}] "{v.title}" ({v.date})')
        lines.append(f"    {_truncate(v.content, VAULT_CONTENT_CHARS)}")
        if v.tags:
            lines.append(f"    Tags: {', '.join(v.tags)}")
        if v.mood is not None:
            energy = f" | Energy: {v.energy}/10" if v.energy is not None else ""
            lines.append(f"    Mood: {v.mood}/10{energy}")
    if len(state.vault) > VAULT_LIMIT:
        lines.append(f"  ... and {len(state.vault) - VAULT_LIMIT} more entries")
    lines.append("")
    return lines


def _skill_lines(state: AppState) -> List[str]:
    lines = [f"--- SKILLS ({len(state.skills)}) ---"]
    for s in state.skills:
        lines.append(f"  * {s.name} Lv.{s.level} ({s.xp} XP) [{', '.join(s.tags)}]")
        if s.notes:
            lines.append(f"    Notes: {s.notes}")
        for sub in s.sub_skills or []:
            lines.append(f"      - {sub.name} Lv.{sub.level} ({sub.xp} XP)")
    lines.append("")
    return lines


def _journal_lines(state: AppState) -> List[str]:
    # Journal entries are stored newest first
    lines = [f"--- JOURNAL ({len(state.journal)} entries) ---"]
    for j in state.journal[:JOURNAL_LIMIT]:
        lines.append(
            f"  [{j.date}] Mood:{j.mood}/10 Energy:{j.energy}/10 - {_truncate(j.text, JOURNAL_TEXT_CHARS)}"
        )
    if len(state.journal) > JOURNAL_LIMIT:
        lines.append(f"  ... and {len(state.journal) - JOURNAL_LIMIT} more entries")
    lines.append("")

    lines.append(f"--- DAILY CHECK-INS ({len(state.daily_check_ins)}) ---")
    for dc in state.daily_check_ins[:CHECK_IN_LIMIT]:
        goal = f" Goal: {dc.main_goal}" if dc.main_goal else ""
        lines.append(f"  [{dc.date}] Energy:{dc.energy} Stress:{dc.stress} Mood:{dc.mood}{goal}")
    lines.append("")
    return lines


def _memory_lines(ltm_blocks: Sequence[CompressedMemoryBlock]) -> List[str]:
    if not ltm_blocks:
        return []
    lines = ["--- LONG-TERM MEMORY ---"]
    for block in ltm_blocks:
        lines.append(
            f"[{block.category.value.upper()}] ({len(block.details)} items, importance: {block.importance})"
        )
        for detail in block.details[:LTM_DETAIL_LIMIT]:
            lines.append(f"  - {detail[:LTM_DETAIL_CHARS]}")
        if len(block.details) > LTM_DETAIL_LIMIT:
            lines.append(f"  ... +{len(block.details) - LTM_DETAIL_LIMIT} more")
    lines.append("")
    return lines


def build_system_state_block(state: AppState, ltm_blocks: Sequence[CompressedMemoryBlock]) -> str:
    """Render the full application state plus long-term memory for the agent"""

    lines: List[str] = [
        "========== SYSTEM STATE BLOCK ==========",
        "(Navi has full read access to all app data)",
        "",
        "--- USER PROFILE ---",
        f"Name: {state.user.name}",
    ]
    cc = state.user.character_class
    if cc:
        lines.append(f"Class: {cc.archetype} ({cc.mbti})")
        lines.append(f"Level: {cc.level} | Rank: {cc.rank} | XP: {cc.xp}")
        if cc.hidden_class:
            lines.append(f"Hidden Class: {cc.hidden_class}")
    lines.append("")

    navi = state.navi_profile
    lines += [
        "--- NAVI PROFILE ---",
        f"Name: {navi.name} | Level: {navi.level} | Rank: {navi.rank}",
        f'Bond: Lv{navi.bond_level} "{navi.bond_title}" | Affection: {navi.affection} | Trust: {navi.trust} | Loyalty: {navi.loyalty}',
        f"Personality: {navi.personality_preset} | Mode: {navi.current_mode}",
        f"Interactions: {navi.interaction_count} | XP: {navi.xp}",
        "",
    ]

    lines += _quest_lines(state)
    lines += _vault_lines(state)
    lines += _skill_lines(state)
    lines += _journal_lines(state)
    lines += _memory_lines(ltm_blocks)

    me = state.leaderboard_entry("me")
    lines += [
        "--- STATS SUMMARY ---",
        f"Total XP: {me.xp if me else 0} | Streak: {me.streak if me else 0} days",
        f"Chat Messages: {state.chat_message_count()} | Files: {len(state.files)} | Images: {len(state.generated_images)}",
        "========== END STATE BLOCK ==========",
    ]
    return "\n".join(lines)


def build_compact_memory_context(ltm_blocks: Sequence[CompressedMemoryBlock]) -> str:
    """Render only long-term memory, most important blocks first"""

    if not ltm_blocks:
        return ""

    lines = ["[NAVI LONG-TERM MEMORY]"]
    for block in sorted(ltm_blocks, key=lambda b: b.importance, reverse=True):
        lines.append(f"[{block.category.value.upper()}]")
        max_details = 10 if block.importance >= 3 else 5
        for detail in block.details[-max_details:]:
            lines.append(f"- {detail[:COMPACT_DETAIL_CHARS]}")
    return "\n".join(lines)
