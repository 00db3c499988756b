#!/usr/bin/env python3
"""
LLVM IR to Control Flow Graph (CFG) Parser

This module parses textual LLVM IR (.ll) files and generates one Control Flow
Graph per function in Mermaid flowchart format, ready to be embedded in a
Markdown document.

Usage:
    python llvm_cfg.py <input.ll> [--abbr] [-f FUNCTION] [-o output.md]
"""

import re
import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Any
from pathlib import Path
import json


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class BasicBlock:
    """Represents a basic block in the CFG."""
    name: str              # "" for the implicit entry block
    instructions: List[str] = field(default_factory=list)
    # As declared by the "; preds = ..." annotation, never derived
    predecessors: List[str] = field(default_factory=list)
    # Derived from branch instructions, duplicates kept
    successors: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.instructions) == 0

    def get_terminator(self) -> Optional[str]:
        """Get the last instruction line of this block."""
        if self.instructions:
            return self.instructions[-1]
        return None

    def get_last_branch(self) -> Optional[str]:
        """Get the last branch instruction in the block (may not be at the very end)."""
        for instr in reversed(self.instructions):
            if classify_branch(instr):
                return instr
        return None

    def is_return(self) -> bool:
        terminator = self.get_terminator()
        return terminator is not None and terminator.strip().startswith(RETURN_PREFIX)

    def is_unreachable(self) -> bool:
        terminator = self.get_terminator()
        return terminator is not None and terminator.strip().startswith(UNREACHABLE_PREFIX)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize basic block to dictionary."""
        return {
            'name': self.name,
            'instructions': self.instructions.copy(),
            'predecessors': self.predecessors.copy(),
            'successors': self.successors.copy(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BasicBlock':
        """Deserialize basic block from dictionary."""
        return cls(
            name=data['name'],
            instructions=list(data.get('instructions', [])),
            predecessors=list(data.get('predecessors', [])),
            successors=list(data.get('successors', [])),
        )


@dataclass
class Function:
    """A function definition and its basic blocks in source order."""
    name: str
    header: str = ""       # The raw "define ... {" line
    blocks: List[BasicBlock] = field(default_factory=list)

    def get_block(self, name: str) -> Optional[BasicBlock]:
        """Return the first block called `name`, or None."""
        for block in self.blocks:
            if block.name == name:
                return block
        return None

    def block_names(self) -> List[str]:
        return [block.name for block in self.blocks]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize function to dictionary."""
        return {
            'name': self.name,
            'header': self.header,
            'blocks': [block.to_dict() for block in self.blocks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Function':
        """Deserialize function from dictionary."""
        return cls(
            name=data['name'],
            header=data.get('header', ''),
            blocks=[BasicBlock.from_dict(b) for b in data.get('blocks', [])],
        )


def save_functions_json(functions: List[Function], filepath: str, indent: int = 2):
    """Save a list of functions to a JSON file."""
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump([func.to_dict() for func in functions], f, indent=indent, ensure_ascii=False)


def load_functions_json(filepath: str) -> List[Function]:
    """Load a list of functions from a JSON file."""
    with open(filepath, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return [Function.from_dict(item) for item in data]


# =============================================================================
# LLVM IR Instruction Classification
# =============================================================================

# Instructions that transfer control to labelled blocks
BRANCH_OPCODES = (
    'br',
    'switch',
    'indirectbr',
)

# Marks a block operand inside a branch instruction
LABEL_MARKER = 'label '

RETURN_PREFIX = 'ret '
UNREACHABLE_PREFIX = 'unreachable'


def extract_branch_targets(operands: str) -> List[str]:
    """
    Extract the labelled targets from the operand text of a branch.

    The operands are split on commas; every segment carrying a label marker
    contributes the token that follows the marker. Order and duplicates are
    preserved.

    Examples:
        "label %exit"                    -> ["%exit"]
        "i1 %c, label %then, label %else" -> ["%then", "%else"]
        "ptr %a, [label %x, label %y]"   -> ["%x", "%y"]
    """
    targets = []
    for segment in operands.split(','):
        if LABEL_MARKER not in segment:
            continue
        tokens = segment.rsplit(LABEL_MARKER, 1)[1].split()
        if not tokens:
            continue
        target = tokens[0].rstrip(']')
        if target:
            targets.append(target)
    return targets


def classify_branch(line: str) -> Optional[str]:
    """
    Classify a branch instruction line.

    Returns:
        'unconditional', 'conditional', 'multiway' or None for non-branches
    """
    match = LLVMIRParser.BRANCH_PATTERN.match(line)
    if not match:
        return None
    opcode = match.group(1)
    if opcode in ('switch', 'indirectbr'):
        return 'multiway'
    if len(extract_branch_targets(match.group(2))) > 1:
        return 'conditional'
    return 'unconditional'


# =============================================================================
# Parser
# =============================================================================

class BlockSegmenter:
    """
    Splits the body of one function into basic blocks.

    Lines are fed one at a time. The segmenter is either waiting for its
    first block (current_block is None) or has a block open that collects
    instructions and successors until the next label or the closing brace.
    """

    def __init__(self):
        self.blocks: List[BasicBlock] = []
        self.current_block: Optional[BasicBlock] = None
        self.finished: bool = False
        # Inside a multi-line switch jump table "[ ... ]"
        self.in_jump_table: bool = False

    def _close_block(self):
        if self.current_block is not None:
            self.blocks.append(self.current_block)
        self.current_block = None
        self.in_jump_table = False

    def _open_block(self, name: str, predecessors: List[str]):
        self._close_block()
        self.current_block = BasicBlock(name=name, predecessors=predecessors)

    def feed(self, line: str) -> bool:
        """
        Consume one line of the function body.

        Returns True once the closing brace has been seen; the caller must
        stop feeding lines at that point.
        """
        label = LLVMIRParser.parse_label(line)
        if label is not None:
            name, predecessors = label
            self._open_block(name, predecessors)
            return False

        if line == '}':
            self._close_block()
            self.finished = True
            return True

        if self.current_block is None:
            self.current_block = BasicBlock(name='')
        block = self.current_block

        if line.strip():
            block.instructions.append(line)

        if self.in_jump_table:
            block.successors.extend(extract_branch_targets(line.split(']')[0]))
            if ']' in line:
                self.in_jump_table = False
            return False

        match = LLVMIRParser.BRANCH_PATTERN.match(line)
        if match:
            operands = match.group(2)
            block.successors.extend(extract_branch_targets(operands))
            if match.group(1) == 'switch' and '[' in operands and ']' not in operands:
                self.in_jump_table = True
        return False

    def finish(self) -> List[BasicBlock]:
        """Close any open block and return the blocks in source order."""
        self._close_block()
        return self.blocks


class LLVMIRParser:
    """Parser for textual LLVM IR files."""

    # Pattern to match function definitions, e.g.
    #   define dso_local i32 @main(i32 %argc, ptr %argv) #0 {
    DEFINE_PATTERN = re.compile(r'^define\s+.*@([a-zA-Z0-9_.]+)\s*\(.*\)\s*(.*)\s*\{$')

    # Pattern to match block labels, with an optional trailing comment, e.g.
    #   for.body:                                 ; preds = %for.cond, %entry
    LABEL_PATTERN = re.compile(r"^([0-9a-zA-Z_.]+):(\s*;.*)?\s*$")

    # Pattern to match the predecessor annotation inside the label comment
    PREDS_PATTERN = re.compile(r'^\s*;\s*preds\s*=\s*(.*)$')

    # Pattern to match branch instructions: opcode, operands
    BRANCH_PATTERN = re.compile(r'^\s*(' + '|'.join(BRANCH_OPCODES) + r')\s+(.*)')

    def __init__(self):
        self.functions: List[Function] = []

    @classmethod
    def parse_header(cls, line: str) -> Optional[str]:
        """Check if line is a function definition. Returns function name or None."""
        match = cls.DEFINE_PATTERN.match(line)
        if match:
            return match.group(1)
        return None

    @classmethod
    def parse_label(cls, line: str) -> Optional[Tuple[str, List[str]]]:
        """
        Check if line is a block label.

        Returns (name, predecessors) or None. A missing or unrecognised
        comment gives an empty predecessor list.
        """
        match = cls.LABEL_PATTERN.match(line)
        if not match:
            return None
        predecessors: List[str] = []
        comment = match.group(2)
        if comment:
            preds_match = cls.PREDS_PATTERN.match(comment)
            if preds_match and preds_match.group(1).strip():
                predecessors = preds_match.group(1).rstrip().split(', ')
        return match.group(1), predecessors

    def parse_function(self, lines: Iterator[str]) -> List[BasicBlock]:
        """
        Parse a function body from a shared line iterator.

        Lines are consumed up to and including the closing brace, or until
        the iterator is exhausted for a truncated body.
        """
        segmenter = BlockSegmenter()
        for line in lines:
            if segmenter.feed(line.rstrip('\r\n')):
                break
        return segmenter.finish()

    def parse_lines(self, lines: Iterable[str]) -> List[Function]:
        """Parse every function definition found in a sequence of lines."""
        functions: List[Function] = []
        line_iter = iter(lines)
        for line in line_iter:
            line = line.rstrip('\r\n')
            func_name = self.parse_header(line)
            if func_name is None:
                continue
            blocks = self.parse_function(line_iter)
            functions.append(Function(name=func_name, header=line, blocks=blocks))
        self.functions.extend(functions)
        return functions

    def parse_string(self, text: str) -> List[Function]:
        return self.parse_lines(text.splitlines())

    def parse_file(self, filepath: str) -> List[Function]:
        """Parse an LLVM IR file and build one CFG per function."""
        with open(filepath, 'r', encoding='utf-8') as f:
            return self.parse_lines(f)


def select_functions(functions: List[Function], name: Optional[str] = None) -> List[Function]:
    """Keep only the functions called `name`; all of them if name is None."""
    if name is None:
        return list(functions)
    return [func for func in functions if func.name == name]


# =============================================================================
# Mermaid Output Generation
# =============================================================================

def display_name(block: BasicBlock) -> str:
    """Node identifier of a block in the diagram."""
    if block.name == '':
        return '%1'
    return f'%{block.name}'


def generate_mermaid(func: Function, abbr: bool = False) -> str:
    """
    Generate a Mermaid flowchart of the function's CFG.

    Args:
        func: The parsed function
        abbr: Omit the instruction text of every block

    Returns:
        A fenced ```mermaid block, newline terminated
    """
    lines = []
    lines.append('```mermaid')
    lines.append('flowchart TD')
    lines.append(f'%% function {func.name}')

    for block in func.blocks:
        node_id = display_name(block)

        # Predecessor names already carry the "%" sigil
        for pred in block.predecessors:
            lines.append(f'\t{pred} -->|{node_id}| {node_id}')

        if not abbr:
            label_content = '\n'.join(block.instructions)
            lines.append(f'{node_id}["{label_content}"]')

        if block.is_return():
            lines.append(f'style {node_id} stroke:#0f0')
        if block.is_unreachable():
            lines.append(f'style {node_id} stroke:#f00')

    lines.append('```')

    return '\n'.join(lines) + '\n'


def render_functions(functions: List[Function], abbr: bool = False) -> str:
    """Render independent diagrams for several functions, in order."""
    return ''.join(generate_mermaid(func, abbr=abbr) for func in functions)


def format_function(func: Function) -> str:
    """Plain-text dump of a function's blocks, for debugging."""
    lines = [f"Function: {func.name}"]
    for block in func.blocks:
        lines.append(f"\tBlock: {block.name}\t; preds = {', '.join(block.predecessors)}")
        for instr in block.instructions:
            lines.append(f"\t\t  {instr}")
        lines.append(f"\t; successors = {', '.join(block.successors)}")
    return '\n'.join(lines) + '\n'


# =============================================================================
# Statistics and Analysis
# =============================================================================

def print_cfg_stats(func: Function):
    """Print statistics about the CFG of one function."""
    print(f"\n{'='*60}")
    print(f"CFG Statistics for: {func.name}")
    print(f"{'='*60}")

    total_blocks = len(func.blocks)
    total_instructions = sum(len(b.instructions) for b in func.blocks)
    total_edges = sum(len(b.successors) for b in func.blocks)

    print(f"Total basic blocks: {total_blocks}")
    print(f"Total instructions: {total_instructions}")
    print(f"Total edges: {total_edges}")

    entry_blocks = [display_name(b) for b in func.blocks if not b.predecessors]
    exit_blocks = [display_name(b) for b in func.blocks if not b.successors]

    print(f"\nEntry blocks: {entry_blocks}")
    print(f"Exit blocks: {exit_blocks}")

    # Block size distribution
    sizes = [len(b.instructions) for b in func.blocks]
    if sizes:
        print(f"\nBlock size statistics:")
        print(f"  Min: {min(sizes)} instructions")
        print(f"  Max: {max(sizes)} instructions")
        print(f"  Avg: {sum(sizes)/len(sizes):.1f} instructions")

    counts = {'unconditional': 0, 'conditional': 0, 'multiway': 0}
    for block in func.blocks:
        for instr in block.instructions:
            kind = classify_branch(instr)
            if kind:
                counts[kind] += 1

    print(f"\nBranch instructions: {sum(counts.values())}")
    print(f"  Conditional: {counts['conditional']}")
    print(f"  Unconditional: {counts['unconditional']}")
    print(f"  Multi-way: {counts['multiway']}")

    print(f"{'='*60}\n")


def list_basic_blocks(func: Function):
    """List all basic blocks with their instruction counts."""
    print(f"\nBasic Blocks in {func.name}:")
    print("-" * 50)

    for block in func.blocks:
        term_info = ""
        if block.is_return():
            term_info = " [RETURN]"
        elif block.is_unreachable():
            term_info = " [UNREACHABLE]"
        else:
            branch = block.get_last_branch()
            if branch:
                kind = classify_branch(branch)
                term_info = f" [{kind.upper()} -> {', '.join(block.successors)}]"

        pred_str = ", ".join(block.predecessors) if block.predecessors else "none"
        succ_str = ", ".join(block.successors) if block.successors else "none"

        print(f"\n{display_name(block)}:{term_info}")
        print(f"  Instructions: {len(block.instructions)}")
        print(f"  Predecessors: {pred_str}")
        print(f"  Successors: {succ_str}")


# =============================================================================
# Main Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description='Parse LLVM IR and generate Control Flow Graphs (Mermaid format)'
    )
    parser.add_argument('input', help='Input LLVM IR (.ll) file')
    parser.add_argument('--abbr', action='store_true',
                       help='Omit the instructions inside basic blocks')
    parser.add_argument('--function', '-f', default=None,
                       help='Only generate the CFG of this function (default: all)')
    parser.add_argument('--output', '-o', default=None,
                       help='Output Markdown file (default: stdout)')
    parser.add_argument('--stats', action='store_true',
                       help='Print CFG statistics')
    parser.add_argument('--list-blocks', action='store_true',
                       help='List all basic blocks')
    parser.add_argument('--dump', action='store_true',
                       help='Print a plain-text dump of the parsed blocks')
    parser.add_argument('--json', default=None,
                       help='Also save the parsed functions to this JSON file')

    args = parser.parse_args(argv)

    if not Path(args.input).exists():
        print(f"Error: Input file does not exist: {args.input}", file=sys.stderr)
        sys.exit(1)

    # Parse the input file
    ir_parser = LLVMIRParser()
    functions = select_functions(ir_parser.parse_file(args.input), args.function)

    if args.stats:
        for func in functions:
            print_cfg_stats(func)

    if args.list_blocks:
        for func in functions:
            list_basic_blocks(func)

    if args.dump:
        for func in functions:
            print(format_function(func), end='')

    if args.json:
        save_functions_json(functions, args.json)
        print(f"JSON file written to: {args.json}", file=sys.stderr)

    mermaid_content = render_functions(functions, abbr=args.abbr)

    # Write output
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(mermaid_content)
        print(f"Mermaid file written to: {args.output}")
    else:
        # Only print the diagrams if no report options were given
        if not args.stats and not args.list_blocks and not args.dump:
            sys.stdout.write(mermaid_content)


if __name__ == '__main__':
    main()
