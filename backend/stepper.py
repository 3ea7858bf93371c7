"""
stepper.py
Step-by-step playback over a generated TAC program, plus the heuristic
mapping from the active instruction back to the source lines it came from.
"""

from tacgen import IF_RE

DEFAULT_DELAY_MS = 1000
MIN_DELAY_MS = 200
MAX_DELAY_MS = 2000
DELAY_STEP_MS = 100

# =====================================================
# INSTRUCTION CLASSIFICATION
# =====================================================
TITLES = {
    'end': 'Execution Complete',
    'if': 'Condition Check',
    'goto': 'Jump Instruction',
    'variable': 'Variable Assignment',
    'temporary': 'Temporary Value Calculation',
    'other': '',
}


def extract_condition(code):
    m = IF_RE.search(code)
    return m.group(1) if m else ''


def classify(instr):
    if instr is None:
        return 'other'
    code = instr.code
    if code == 'END':
        return 'end'
    if code.startswith('if'):
        return 'if'
    # also matches the goto__N_ end-of-branch marker
    if code.startswith('goto'):
        return 'goto'
    if '=' in code:
        if 'T' in code and not code.startswith('T'):
            return 'variable'
        return 'temporary'
    return 'other'


def describe(instr):
    """Summary of the active instruction for the visualization panel."""
    kind = classify(instr)
    info = {
        'kind': kind,
        'title': TITLES[kind],
        'code': instr.code if instr is not None else '',
    }
    if kind == 'if':
        info['condition'] = extract_condition(instr.code)
    elif kind == 'variable':
        info['memory_updated'] = instr.code.split('=')[0]
    return info

# =====================================================
# SOURCE LINE HIGHLIGHTING
# =====================================================
def is_current_executing_line(line, instr):
    """
    Heuristic match of a raw source line against the active instruction.

    Matching is by substring containment, so a line is highlighted whenever
    it repeats the condition, expression or target of the instruction.
    """
    if instr is None:
        return False
    code = instr.code

    if code.startswith('if'):
        condition = extract_condition(code)
        return f"if ({condition})" in line or f"if({condition})" in line

    if '=' in code:
        parts = code.split('=')
        if code.startswith('T'):
            return parts[1] in line
        variable = parts[0].strip()
        return f"{variable}=" in line or f"{variable} =" in line

    return False


def highlight_lines(source, instr):
    return [idx for idx, line in enumerate(source.split('\n'))
            if is_current_executing_line(line, instr)]

# =====================================================
# STEPPER
# =====================================================
class Stepper:
    def __init__(self, instructions, delay_ms=DEFAULT_DELAY_MS, min_delay_ms=MIN_DELAY_MS,
                 max_delay_ms=MAX_DELAY_MS, delay_step_ms=DELAY_STEP_MS):
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.delay_step_ms = delay_step_ms
        self.delay_ms = delay_ms
        self.load(instructions)

    def load(self, instructions):
        self.instructions = tuple(instructions)
        self.current_step = 0
        self.playing = False

    @property
    def delay_ms(self):
        return self._delay_ms

    @delay_ms.setter
    def delay_ms(self, value):
        value = max(self.min_delay_ms, min(int(value), self.max_delay_ms))
        # snap onto the slider grid
        offset = value - self.min_delay_ms
        value = self.min_delay_ms + int(offset / self.delay_step_ms + 0.5) * self.delay_step_ms
        self._delay_ms = min(value, self.max_delay_ms)

    @property
    def last_step(self):
        return max(len(self.instructions) - 1, 0)

    @property
    def current(self):
        if not self.instructions:
            return None
        return self.instructions[self.current_step]

    @property
    def at_start(self):
        return self.current_step == 0

    @property
    def at_end(self):
        return self.current_step >= self.last_step

    def go_to(self, step):
        self.current_step = max(0, min(step, self.last_step))
        return self.current

    def previous(self):
        return self.go_to(self.current_step - 1)

    def next(self):
        return self.go_to(self.current_step + 1)

    def play_pause(self):
        if self.at_end:
            self.current_step = 0
        self.playing = not self.playing
        return self.playing

    def reset(self):
        self.current_step = 0
        self.playing = False

    def tick(self):
        """Advance one step while playing; playback stops on the last step."""
        moved = False
        if self.playing and not self.at_end:
            self.current_step += 1
            moved = True
        if self.at_end:
            self.playing = False
        return moved

    def snapshot(self):
        return {
            'step': self.current_step,
            'playing': self.playing,
            'delay_ms': self.delay_ms,
            'total': len(self.instructions),
            'at_start': self.at_start,
            'at_end': self.at_end,
        }
