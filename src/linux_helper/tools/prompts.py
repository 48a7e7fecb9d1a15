"""Instruction builders for the Linux helper tools.

Each builder embeds its input verbatim into a fixed instruction that the
model answers in its next step.
"""

from __future__ import annotations

from typing import Any

from linux_helper.shell.safety import classify


def explain_command(command: str) -> dict[str, Any]:
    instruction = f"""Provide a detailed breakdown of this command: {command}

Format your response as:
1. **Command Overview**: What does this command do at a high level?
2. **Components Breakdown**:
   - Base command: [explain]
   - Each flag/option: [explain what each does]
   - Arguments: [explain what each argument represents]
3. **Example Output**: What would typical output look like?
4. **Common Variations**: Other useful ways to use this command
5. **Safety Notes**: Any warnings about destructive potential"""
    return {"type": "explain", "command": command, "instruction": instruction}


def suggest_command(task: str, distro: str | None = None) -> dict[str, Any]:
    target = f" (for {distro})" if distro else ""
    instruction = f"""Suggest the best command(s) to: {task}{target}

Format your response as:
1. **Recommended Command**: The primary command to use
2. **Explanation**: Why this is the best approach
3. **Alternative Options**: Other ways to accomplish this
4. **Pro Tips**: Useful flags or variations
5. **Example Usage**: Real-world example with expected output"""
    return {
        "type": "suggest",
        "task": task,
        "distro": distro or "generic",
        "instruction": instruction,
    }


def fix_error(error: str, context: str | None = None) -> dict[str, Any]:
    suffix = f" (Context: {context})" if context else ""
    instruction = f"""Help troubleshoot this error: {error}{suffix}

Format your response as:
1. **Error Analysis**: What does this error actually mean?
2. **Common Causes**: Top reasons this error occurs
3. **Diagnostic Steps**: Commands to gather more information
4. **Solution(s)**: Step-by-step fix instructions
5. **Prevention**: How to avoid this in the future"""
    return {
        "type": "fix",
        "error": error,
        "context": context or "unknown",
        "instruction": instruction,
    }


def man_page(command: str) -> dict[str, Any]:
    instruction = f"""Provide a man page summary for: {command}

Format your response as:
## {command.upper()}(1) - Manual Page Summary

### NAME
[command] - [one-line description]

### SYNOPSIS
```
[usage pattern]
```

### DESCRIPTION
[Brief description of what the command does]

### COMMONLY USED OPTIONS
| Option | Description |
|--------|-------------|
| -x | ... |

### EXAMPLES
```bash
# Example 1: [description]
[command example]

# Example 2: [description]
[command example]
```

### SEE ALSO
[Related commands]"""
    return {"type": "manpage", "command": command, "instruction": instruction}


def danger_check(command: str) -> dict[str, Any]:
    return classify(command).to_payload()
