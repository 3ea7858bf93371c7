#!/usr/bin/env python3
"""
tacgen.py
Educational three address code generator for a tiny structured language:
straight-line assignments plus single-level if / else blocks delimited by braces.

Pipeline: source text -> lines -> structural analysis (blocks) -> numbered TAC.
Unrecognized lines are skipped, never reported as errors.
"""

import logging
import re
import sys
from collections import namedtuple

logger = logging.getLogger(__name__)

IF_RE = re.compile(r'if\s*\((.*?)\)', re.ASCII)
ASSIGN_RE = re.compile(r'(\w+)\s*=\s*(.*)', re.ASCII)

SAMPLE_CODE = """if (a<5)
{
  c= b+d
  d= i+j
}
else
{
  d= a+b
  k= x+y
}"""

# =====================================================
# LINE PREPROCESSOR
# =====================================================
def split_lines(source):
    return source.strip().split('\n')

# =====================================================
# BLOCKS
# =====================================================
# Assignment: `target = expr` on a single line
Assignment = namedtuple('Assignment', ['text', 'target', 'expr', 'lineno'])

# Conditional: body / else_body are tuples of Assignment, else_body is None
# when no else branch follows the if block.
Conditional = namedtuple('Conditional', ['condition', 'body', 'else_body', 'lineno', 'end_lineno'])


def parse_assignment(text, lineno=None):
    """Return an Assignment for `text`, or None when it is not `<identifier> = <expression>`."""
    m = ASSIGN_RE.search(text)
    if not m:
        return None
    target, expr = m.groups()
    return Assignment(text, target.strip(), expr.strip(), lineno)

# =====================================================
# STRUCTURAL ANALYZER
# =====================================================
class StructureAnalyzer:
    """
    Recovers top-level blocks from raw source lines by brace counting.

    A line counts +1 when it contains `{` and -1 when it contains `}`;
    a line containing both counts toward both. Branch bodies are scanned
    for flat assignments only, so a conditional inside a branch is skipped.
    """

    def __init__(self, lines):
        self.lines = list(lines)
        self.blocks = []
        self.skipped = []

    def analyze(self):
        lines = self.lines
        i = 0
        while i < len(lines):
            line = lines[i].strip()

            if line == '':
                i += 1
                continue

            if_match = IF_RE.search(line)
            if if_match:
                condition = if_match.group(1).strip()
                brace, close = self.find_block(i)
                body = self.collect_body(brace + 1, close - 1)

                else_body = None
                end = close
                if close < len(lines) and lines[close].strip().startswith('else'):
                    else_brace, else_close = self.find_block(close)
                    else_body = self.collect_body(else_brace + 1, else_close - 1)
                    end = else_close

                self.blocks.append(Conditional(condition, body, else_body, i, end - 1))
                i = end
                continue

            assignment = parse_assignment(line, i)
            if assignment:
                self.blocks.append(assignment)
            else:
                self.skip(i)
            i += 1

        logger.debug("analyzed %d lines into %d blocks (%d skipped)",
                     len(lines), len(self.blocks), len(self.skipped))
        return self.blocks

    def find_block(self, start):
        """
        Return (brace, close) for the brace block opened at or after line `start`.

        `brace` is the first line containing `{`; `close` is one past the last
        line scanned, i.e. one past the line where the depth returned to 0,
        or len(lines) + 1 when no opening brace exists.
        """
        lines = self.lines
        brace = start
        while brace < len(lines) and '{' not in lines[brace]:
            brace += 1

        depth = 1
        j = brace + 1
        while j < len(lines) and depth > 0:
            current = lines[j]
            if '{' in current:
                depth += 1
            if '}' in current:
                depth -= 1
            j += 1
        return brace, j

    def collect_body(self, start, stop):
        body = []
        for k in range(start, stop):
            text = self.lines[k].strip()
            if text in ('', '{', '}'):
                continue
            assignment = parse_assignment(text, k)
            if assignment:
                body.append(assignment)
            else:
                self.skip(k)
        return tuple(body)

    def skip(self, lineno):
        logger.debug("skipping unrecognized line %d: %r", lineno + 1, self.lines[lineno])
        self.skipped.append(lineno)


def analyze(lines):
    return StructureAnalyzer(lines).analyze()

# =====================================================
# INSTRUCTIONS
# =====================================================
Instruction = namedtuple('Instruction', ['line', 'code'])


def format_instruction(instr):
    return f"{instr.line}) {instr.code}"

# =====================================================
# CODE GENERATOR
# =====================================================
class GenState:
    """Line number and temporary counters for one generation run."""

    def __init__(self, line_number=1, temp_counter=1):
        self.line_number = line_number
        self.temp_counter = temp_counter
        self.tac = []

    def emit(self, code):
        self.tac.append(Instruction(self.line_number, code))
        self.line_number += 1

    def new_temp(self):
        temp = f"T{self.temp_counter}"
        self.temp_counter += 1
        return temp


def gen_assignment(state, assignment):
    temp = state.new_temp()
    state.emit(f"{temp}={assignment.expr}")
    state.emit(f"{assignment.target}={temp}")


def gen_conditional(state, block):
    start = state.line_number
    n = len(block.body)

    # the true branch always resumes right after the jump over it
    state.emit(f"if ({block.condition}) goto {start + 2}")

    if block.else_body is not None:
        m = len(block.else_body)
        state.emit(f"goto {start + 2 + 2 * n + 1}")
        for assignment in block.body:
            gen_assignment(state, assignment)
        # malformed marker is part of the output grammar
        state.emit(f"goto__{start + 3 + 2 * n + 2 * m}_")
        for assignment in block.else_body:
            gen_assignment(state, assignment)
    else:
        state.emit(f"goto {start + 2 + 2 * n}")
        for assignment in block.body:
            gen_assignment(state, assignment)


def generate(blocks):
    state = GenState()
    for block in blocks:
        if isinstance(block, Conditional):
            gen_conditional(state, block)
        elif isinstance(block, Assignment):
            gen_assignment(state, block)
        else:
            raise TypeError(f"unknown block type {type(block).__name__}")
    state.tac.append(Instruction(state.line_number, 'END'))
    return state.tac

# =====================================================
# DRIVER
# =====================================================
def generate_tac(source):
    return generate(analyze(split_lines(source)))


def compile_source(code, verbose=False):
    result = {
        'lines': [],
        'blocks': [],
        'tac': [],
        'skipped': [],
        'errors': [],
    }

    lines = split_lines(code)
    result['lines'] = lines

    analyzer = StructureAnalyzer(lines)
    blocks = analyzer.analyze()
    result['blocks'] = blocks
    result['skipped'] = list(analyzer.skipped)

    tac = generate(blocks)
    result['tac'] = tac

    if verbose:
        print("== Blocks ==")
        for block in blocks:
            print(f"  {block}")
        if analyzer.skipped:
            print("== Skipped lines ==")
            for lineno in analyzer.skipped:
                print(f"  {lineno + 1}: {lines[lineno].strip()}")
        print("== Three Address Code ==")
        for instr in tac:
            print(format_instruction(instr))

    return result


if __name__ == '__main__':
    if len(sys.argv) > 1:
        with open(sys.argv[1], encoding='utf-8') as f:
            source = f.read()
    else:
        source = SAMPLE_CODE
    compile_source(source, verbose=True)
