"""Parser for kernel-format process/thread stat lines.

A /proc/[pid]/stat line looks like::

    1234 (my (weird) proc) S 1 1234 1234 0 -1 4194560 ... 250 30 ...

The command field is not escaped by the kernel and may itself contain spaces
and parentheses, so it is isolated by the FIRST '(' and the LAST ')'.
"""

from proc_usage.errors import ParseError
from proc_usage.models import RawStat

# Field positions relative to the first token after the command.
# With the id and command prepended, utime/stime are fields 13/14.
_STATE = 0
_PPID = 1
_UTIME = 11
_STIME = 12


def parse_stat_line(line: str) -> RawStat:
    """Parse a stat line into a RawStat.

    Everything before the first '(' is the id, everything up to the last ')'
    is the command taken verbatim, and the rest is whitespace-tokenized.

    Raises:
        ParseError: If the line is malformed or a numeric field is not an integer.
            No partially filled RawStat is ever produced.
    """
    start = line.find("(")
    end = line.rfind(")")
    if start < 0 or end < start:
        raise ParseError("stat line has no command field", line)

    pre = line[:start].split()
    post = line[end + 1 :].split()
    if not pre:
        raise ParseError("stat line has no id field", line)
    if len(post) <= _STIME:
        raise ParseError(f"stat line has {len(post)} fields after command, need {_STIME + 1}", line)

    try:
        pid = int(pre[0])
        ppid = int(post[_PPID])
        user_ticks = int(post[_UTIME])
        kernel_ticks = int(post[_STIME])
    except ValueError as e:
        raise ParseError(f"non-numeric stat field ({e})", line) from e

    return RawStat(
        pid=pid,
        command=line[start + 1 : end],
        state=post[_STATE],
        ppid=ppid,
        user_ticks=user_ticks,
        kernel_ticks=kernel_ticks,
    )
