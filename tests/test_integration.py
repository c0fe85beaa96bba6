"""End-to-end tests driving the REPL as a subprocess over stdin/stdout."""
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
MINIPY = ROOT / "minipy.py"


def run_minipy(cmds):
    """Feed ``cmds`` to the REPL and return the last value it displayed."""
    if isinstance(cmds, str):
        lines = cmds.splitlines()
    else:
        lines = list(cmds)

    stdin = "\n".join(lines) + "\n\nexit\n"
    p = subprocess.run(
        [sys.executable, str(MINIPY), "-q"],
        input=stdin.encode("utf-8"),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        timeout=10,
        cwd=str(ROOT),
    )

    payloads = []
    for raw in p.stdout.decode("utf-8", "ignore").splitlines():
        s = raw.lstrip()
        if s.startswith(">>> ") or s.startswith("... "):
            parts = s.replace(">>> ", "###").replace("... ", "###").split("###")
            val = parts[-1].strip() if parts else ""
            if not val:
                continue
            payloads.append(val)

    return payloads[-1] if payloads else ""


@pytest.mark.parametrize("expr,expected", [
    # int, int
    ("2 + 3", "5"),
    ("6 - 2", "4"),
    ("2 * 3", "6"),
    ("2 / 5", "0.4"),
    ("17 // 9", "1"),
    ("17 % 9", "8"),
    ("2 ** 3", "8"),
    ("2 < 3", "True"),
    ("2 <= 1", "False"),
    ("2 == 2", "True"),
    ("2 != 2", "False"),
    ("2 >= 3", "False"),
    ("3 > 2", "True"),

    # float, float
    ("2.3 + 3.3", "5.6"),
    ("6.3 - 2.3", "4.0"),
    ("0.5 * 2", "1.0"),
    ("5.0 / 0.5", "10.0"),
    ("17.0 // 9.0", "1.0"),
    ("17.0 % 9.0", "8.0"),
    ("2.25 ** 0.5", "1.5"),
    ("2.0 != 1.0", "True"),

    # mixed numbers
    ("2 + 3.0", "5.0"),
    ("6.0 - 2", "4.0"),
    ("17.0 / 2", "8.5"),
    ("17 // 9.0", "1.0"),
    ("17.0 % 9", "8.0"),
    ("2 ** 3.0", "8.0"),
    ("3 < 2.0", "False"),
    ("2.0 == 2", "True"),
    ("2 >= 2.0", "True"),

    # strings
    ('"a" + "b"', "'ab'"),
    ('"abc" == "abc"', "True"),
    ('"abc" < "abcd"', "True"),
    ('"A" < "a"', "True"),
    ('"theta" < "alpha"', "False"),
    ('"abd" >= "abcd"', "True"),
    ('"abc" > "abac"', "True"),
    ('"ab" * 2', "'abab'"),
    ('2 * "ab"', "'abab'"),
    ('"ab" * 0', "''"),
    ('-1 * "ab"', "''"),

    # precedence
    ("2 + 3 * 4", "14"),
    ("(2 + 3) * (4 + 5)", "45"),
    ("2 ** 2 * 5", "20"),
    ("2 ** 3 ** 2", "512"),
    ("5 ** 2 * 4 + 17 == 117", "True"),
    ("2 ** 9 / 32 + 3 / 4", "16.75"),
    ("-2**2", "-4"),
    ("(-2)**2", "4"),
    ("2**-2", "0.25"),
    ("100 - 10 - 5", "85"),
    ("100 // (10 // 3)", "33"),
    ("20 / 4 * 2", "10.0"),
    ("20 // 3 % 4", "2"),
    ("1 < 3 > 2", "True"),
    ("2 > 1 == 1", "True"),
    ("1 + 2 <= 3", "True"),
])
def test_single_line_expressions(expr, expected):
    got = run_minipy(expr)
    assert got == expected, f"minipy: {expr!r} -> {got!r}, expected: {expected!r}"


@pytest.mark.parametrize("commands,expected", [
    (["a = 5",
      "if a == 5:",
      "    b = 6",
      "",
      "b"
      ], "6"),

    (["a = 5",
      "b = 4",
      "if a > b:",
      "    c = 'greater'",
      "elif a < b:",
      "    c = 'less'",
      "else:",
      "    c = 'equal'",
      "",
      "c"
      ], "'greater'"),

    (["a = 5",
      "b = 6",
      "if a > b:",
      "    c = 'greater'",
      "elif a < b:",
      "    c = 'less'",
      "else:",
      "    c = 'equal'",
      "",
      "c"
      ], "'less'"),

    (["a = 1",
      "s = 0",
      "while a < 101:",
      "    s = s + a",
      "    a = a + 1",
      "",
      "s"
      ], "5050"),

    (["a = 1",
      "s = 0",
      "while a < 101:",
      "    s = s + a",
      "    a = a + 1",
      "else:",
      "    s = 404",
      "",
      "s"
      ], "404"),

    (["a = 1",
      "s = 0",
      "while a < 101:",
      "    s = s + a",
      "    a = a + 1",
      "    if a == 5:",
      "        break",
      "else:",
      "    s = 404",
      "",
      "s"
      ], "10"),

    (["a = 0",
      "s = 0",
      "while a < 10:",
      "    a = a + 1",
      "    if a % 2 == 0:",
      "        continue",
      "    s = s + a",
      "",
      "s"
      ], "25"),

    (["x = 1",
      "x / 0",
      "x + 1"
      ], "2"),
])
def test_multiline_programs(commands, expected):
    got = run_minipy(commands)
    assert got == expected, f"minipy: {commands!r} -> {got!r}, expected: {expected!r}"
