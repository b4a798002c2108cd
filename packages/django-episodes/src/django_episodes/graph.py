"""
Pure function validators for episode transition tables.

These functions validate the state machine graph without any Django model lifecycle.
Used by EpisodeMachine() at construction AND tests directly.
"""


def validate_transition_table(
    states: list[str],
    transitions: list[tuple[str, str, str]],
    initial_state: str,
) -> list[str]:
    """
    Validate a trigger-labelled transition table is deterministic and usable.

    Returns list of error messages (empty = valid).

    Checks:
    - initial_state exists in states
    - all transition sources and targets exist in states
    - at most one transition per (from_state, trigger) pair
    - all states reachable from initial_state

    Args:
        states: List of valid state names
        transitions: List of (from_state, trigger, to_state) triples
        initial_state: Starting state for new episodes

    Returns:
        List of error message strings (empty if valid)
    """
    errors = []
    states_set = set(states)

    if initial_state not in states_set:
        errors.append(f"initial_state '{initial_state}' not in states")

    seen_pairs = set()
    for from_state, trigger, to_state in transitions:
        if from_state not in states_set:
            errors.append(f"transition from unknown state '{from_state}'")
        if to_state not in states_set:
            errors.append(f"transition to unknown state '{to_state}'")
        if (from_state, trigger) in seen_pairs:
            errors.append(f"duplicate transition for '{from_state}' on trigger '{trigger}'")
        seen_pairs.add((from_state, trigger))

    # Reachability: all states reachable from initial_state
    if initial_state in states_set:  # Only check if initial_state is valid
        adjacency = {}
        for from_state, _trigger, to_state in transitions:
            adjacency.setdefault(from_state, []).append(to_state)
        reachable = _find_reachable_states(initial_state, adjacency)
        for state in states:
            if state not in reachable:
                errors.append(f"state '{state}' unreachable from initial_state")

    return errors


def _find_reachable_states(start: str, transitions: dict[str, list[str]]) -> set[str]:
    """
    BFS to find all reachable states from start.

    Args:
        start: Starting state
        transitions: Dict mapping state -> list of reachable states

    Returns:
        Set of all states reachable from start (including start itself)
    """
    visited = {start}
    queue = [start]

    while queue:
        current = queue.pop(0)
        for next_state in transitions.get(current, []):
            if next_state not in visited:
                visited.add(next_state)
                queue.append(next_state)

    return visited
