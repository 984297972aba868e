"""
Condition Encoding

Maps generic comparison predicates onto the machine's two condition
representations and negates them:

- Condition bits: produced by CMP/FCMP, tested by BRIB/BRFB. Six families
  (signed, unsigned, ordered float, unordered float, float absolute-value
  range, float class). Several families reuse the same numeric encodings,
  so each family is its own enum and members never compare equal across
  families.
- Condition codes: tested by BRC against zero, one family per operand kind
  (integer, 32-bit float, 64-bit float).

Everything here is a pure table lookup. A request with no encoding is an
InvariantViolation: the caller asked for something instruction selection
can never produce.
"""

from enum import Enum
from typing import Optional, Union

from .mir import FImm, Imm, MachineInst, MOpcode, Reg


class InvariantViolation(RuntimeError):
    """A condition value or loop shape outside the closed set the backend handles."""


class Predicate(Enum):
    """Generic comparison predicates."""
    # Integer (signed) or don't-care float
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    # Unsigned integer or unordered float
    ULT = "ult"
    ULE = "ule"
    UGT = "ugt"
    UGE = "uge"
    # Ordered float
    OEQ = "oeq"
    ONE = "one"
    OLT = "olt"
    OLE = "ole"
    OGT = "ogt"
    OGE = "oge"
    ORD = "ord"
    # Unordered float
    UEQ = "ueq"
    UNE = "une"
    UNO = "uno"


class Domain(Enum):
    """Comparison domain for condition bits."""
    SIGNED_INT = "signed"
    UNSIGNED_INT = "unsigned"
    ORDERED_FLOAT = "ordered"
    UNORDERED_FLOAT = "unordered"


class ValueKind(Enum):
    """Kind of the register a condition code tests against zero."""
    INTEGER = "i64"
    FLOAT32 = "f32"
    FLOAT64 = "f64"


class _Condition(Enum):
    """Shared printing for condition enums."""

    @property
    def mnemonic(self) -> str:
        return self.name.lower()

    def __str__(self):
        return self.mnemonic


# === Condition bits ===

class SignedBits(_Condition):
    EQ = 0
    NE = 2
    GE = 4
    LT = 6
    GT = 8
    LE = 10


class UnsignedBits(_Condition):
    EQ = 0
    NE = 2
    HS = 12
    LO = 13
    HI = 14
    LS = 15


class OrderedFloatBits(_Condition):
    EQ = 0
    NE = 2
    GE = 4
    LT = 6
    GT = 8
    LE = 10
    OR = 16
    TO = 18


class UnorderedFloatBits(_Condition):
    NEQ = 1
    NNE = 3
    NGE = 5
    NLT = 7
    NGT = 9
    NLE = 11
    NOR = 17
    NTO = 19


class AbsRangeBits(_Condition):
    """|a| vs |b| range compares (FCMP on absolute values)."""
    HS = 12
    LO = 13
    HI = 14
    LS = 15


class FloatClassBits(_Condition):
    """Special-value classification of a float operand."""
    SNAN = 32
    QNAN = 33
    MINF = 34
    MNOR = 35
    MDE = 36
    MZE = 37
    PZE = 38
    PDE = 39
    PNOR = 40
    NINF = 41


ConditionBits = Union[
    SignedBits, UnsignedBits, OrderedFloatBits, UnorderedFloatBits, AbsRangeBits, FloatClassBits
]

BITS_FAMILIES = (
    SignedBits, UnsignedBits, OrderedFloatBits, UnorderedFloatBits, AbsRangeBits, FloatClassBits
)


# === Condition codes ===

class IntCondCode(_Condition):
    EQ0 = 0
    NE0 = 1
    GE0 = 2
    LT0 = 3
    GT0 = 4
    LE0 = 5


class Float64CondCode(_Condition):
    EQ = 8
    NE = 9
    GE = 10
    LT = 11
    GT = 12
    LE = 13
    OR = 14
    UN = 15

    @property
    def mnemonic(self) -> str:
        return "f" + self.name.lower()


class Float32CondCode(_Condition):
    EQ = 16
    NE = 17
    GE = 18
    LT = 19
    GT = 20
    LE = 21
    OR = 22
    UN = 23

    @property
    def mnemonic(self) -> str:
        return "f" + self.name.lower() + "f"


ConditionCode = Union[IntCondCode, Float64CondCode, Float32CondCode]

CODE_FAMILIES = (IntCondCode, Float64CondCode, Float32CondCode)


def condition_family(value: Enum) -> type:
    """Return the condition family (enum class) of a condition value."""
    family = type(value)
    if family not in BITS_FAMILIES and family not in CODE_FAMILIES:
        raise InvariantViolation(f"Not a condition value: {value!r}")
    return family


def mnemonic(value: Enum) -> str:
    """Assembly spelling of a condition value."""
    condition_family(value)
    return value.mnemonic


# === Predicate -> condition bits ===

def to_condition_bits(predicate: Predicate, domain: Domain) -> ConditionBits:
    """Map a predicate onto the condition bits a compare in `domain` produces."""
    P = Predicate
    match domain:
        case Domain.SIGNED_INT:
            table = {
                P.EQ: SignedBits.EQ, P.NE: SignedBits.NE,
                P.LT: SignedBits.LT, P.LE: SignedBits.LE,
                P.GT: SignedBits.GT, P.GE: SignedBits.GE,
            }
        case Domain.UNSIGNED_INT:
            table = {
                P.EQ: UnsignedBits.EQ, P.NE: UnsignedBits.NE,
                P.ULT: UnsignedBits.LO, P.ULE: UnsignedBits.LS,
                P.UGT: UnsignedBits.HI, P.UGE: UnsignedBits.HS,
            }
        case Domain.ORDERED_FLOAT:
            table = {
                P.EQ: OrderedFloatBits.EQ, P.OEQ: OrderedFloatBits.EQ,
                P.NE: OrderedFloatBits.NE, P.ONE: OrderedFloatBits.NE,
                P.LT: OrderedFloatBits.LT, P.OLT: OrderedFloatBits.LT,
                P.LE: OrderedFloatBits.LE, P.OLE: OrderedFloatBits.LE,
                P.GT: OrderedFloatBits.GT, P.OGT: OrderedFloatBits.GT,
                P.GE: OrderedFloatBits.GE, P.OGE: OrderedFloatBits.GE,
                P.ORD: OrderedFloatBits.OR,
            }
        case Domain.UNORDERED_FLOAT:
            # An unordered predicate is the complement of the opposite ordered one.
            table = {
                P.UEQ: UnorderedFloatBits.NNE, P.UNE: UnorderedFloatBits.NEQ,
                P.ULT: UnorderedFloatBits.NGE, P.ULE: UnorderedFloatBits.NGT,
                P.UGT: UnorderedFloatBits.NLE, P.UGE: UnorderedFloatBits.NLT,
                P.UNO: UnorderedFloatBits.NOR,
            }
        case _:
            raise InvariantViolation(f"Unknown comparison domain: {domain!r}")
    if predicate not in table:
        raise InvariantViolation(
            f"Predicate {predicate.value} has no condition bits in the {domain.value} domain"
        )
    return table[predicate]


# === Predicate -> condition code ===

_FLOAT_CODE_NAMES = {
    Predicate.EQ: "EQ", Predicate.OEQ: "EQ", Predicate.UEQ: "EQ",
    Predicate.NE: "NE", Predicate.ONE: "NE", Predicate.UNE: "NE",
    Predicate.GE: "GE", Predicate.OGE: "GE", Predicate.UGE: "GE",
    Predicate.LT: "LT", Predicate.OLT: "LT", Predicate.ULT: "LT",
    Predicate.GT: "GT", Predicate.OGT: "GT", Predicate.UGT: "GT",
    Predicate.LE: "LE", Predicate.OLE: "LE", Predicate.ULE: "LE",
    Predicate.ORD: "OR",
    Predicate.UNO: "UN",
}


def to_condition_code(predicate: Predicate, kind: ValueKind) -> ConditionCode:
    """Map `value <predicate> 0` onto the condition code BRC tests."""
    if kind == ValueKind.INTEGER:
        table = {
            Predicate.EQ: IntCondCode.EQ0, Predicate.NE: IntCondCode.NE0,
            Predicate.LT: IntCondCode.LT0, Predicate.LE: IntCondCode.LE0,
            Predicate.GT: IntCondCode.GT0, Predicate.GE: IntCondCode.GE0,
            # unsigned x > 0 is x != 0
            Predicate.UGT: IntCondCode.NE0,
        }
        if predicate not in table:
            raise InvariantViolation(
                f"Predicate {predicate.value} cannot be tested against zero for {kind.value}"
            )
        return table[predicate]

    family = Float32CondCode if kind == ValueKind.FLOAT32 else Float64CondCode
    name = _FLOAT_CODE_NAMES.get(predicate)
    if name is None:
        raise InvariantViolation(
            f"Predicate {predicate.value} cannot be tested against zero for {kind.value}"
        )
    return family[name]


# === Negation ===

def _negate_bits(value: ConditionBits) -> ConditionBits:
    match value:
        case SignedBits.EQ: return SignedBits.NE
        case SignedBits.NE: return SignedBits.EQ
        case SignedBits.GT: return SignedBits.LE
        case SignedBits.LE: return SignedBits.GT
        case SignedBits.GE: return SignedBits.LT
        case SignedBits.LT: return SignedBits.GE

        case UnsignedBits.EQ: return UnsignedBits.NE
        case UnsignedBits.NE: return UnsignedBits.EQ
        case UnsignedBits.HI: return UnsignedBits.LS
        case UnsignedBits.LS: return UnsignedBits.HI
        case UnsignedBits.LO: return UnsignedBits.HS
        case UnsignedBits.HS: return UnsignedBits.LO

        case OrderedFloatBits.EQ: return OrderedFloatBits.NE
        case OrderedFloatBits.NE: return OrderedFloatBits.EQ
        case OrderedFloatBits.GT: return OrderedFloatBits.LE
        case OrderedFloatBits.LE: return OrderedFloatBits.GT
        case OrderedFloatBits.GE: return OrderedFloatBits.LT
        case OrderedFloatBits.LT: return OrderedFloatBits.GE
        case OrderedFloatBits.OR: return UnorderedFloatBits.NOR
        case OrderedFloatBits.TO: return UnorderedFloatBits.NTO

        case UnorderedFloatBits.NEQ: return UnorderedFloatBits.NNE
        case UnorderedFloatBits.NNE: return UnorderedFloatBits.NEQ
        case UnorderedFloatBits.NGE: return UnorderedFloatBits.NLT
        case UnorderedFloatBits.NLT: return UnorderedFloatBits.NGE
        case UnorderedFloatBits.NGT: return UnorderedFloatBits.NLE
        case UnorderedFloatBits.NLE: return UnorderedFloatBits.NGT
        case UnorderedFloatBits.NOR: return OrderedFloatBits.OR
        case UnorderedFloatBits.NTO: return OrderedFloatBits.TO

    # AbsRangeBits: the complement of an |a| vs |b| range compare is not
    # settled by the compare-instruction definition. FloatClassBits have none.
    raise InvariantViolation(f"Condition bits {value!r} have no defined negation")


def _negate_code(value: ConditionCode) -> ConditionCode:
    match value:
        case IntCondCode.EQ0: return IntCondCode.NE0
        case IntCondCode.NE0: return IntCondCode.EQ0
        case IntCondCode.GE0: return IntCondCode.LT0
        case IntCondCode.LT0: return IntCondCode.GE0
        case IntCondCode.GT0: return IntCondCode.LE0
        case IntCondCode.LE0: return IntCondCode.GT0

    family = type(value)
    opposite = {"EQ": "NE", "NE": "EQ", "GE": "LT", "LT": "GE",
                "GT": "LE", "LE": "GT", "OR": "UN", "UN": "OR"}
    return family[opposite[value.name]]


def negate(value: Union[ConditionBits, ConditionCode]) -> Union[ConditionBits, ConditionCode]:
    """Logical negation of a condition value. negate(negate(x)) == x."""
    family = condition_family(value)
    if family in CODE_FAMILIES:
        return _negate_code(value)
    return _negate_bits(value)


def reverse_branch_condition(inst: MachineInst) -> None:
    """Negate the condition operand of a conditional branch in place."""
    if not inst.is_conditional_branch():
        raise InvariantViolation(f"Not a conditional branch: {inst}")
    cond = inst.operands[0]
    if inst.opcode == MOpcode.BRC and not isinstance(cond, CODE_FAMILIES):
        raise InvariantViolation(f"BRC carries non-code condition {cond!r}")
    if inst.opcode != MOpcode.BRC and not isinstance(cond, BITS_FAMILIES):
        raise InvariantViolation(f"{inst.opcode.value} carries non-bits condition {cond!r}")
    inst.operands[0] = negate(cond)


# === Condition code -> condition bits ===

_CODE_TO_BITS = {
    IntCondCode.EQ0: SignedBits.EQ,
    IntCondCode.NE0: SignedBits.NE,
    IntCondCode.GE0: SignedBits.GE,
    IntCondCode.LT0: SignedBits.LT,
    IntCondCode.GT0: SignedBits.GT,
    IntCondCode.LE0: SignedBits.LE,
}


def code_to_bits(code: ConditionCode) -> Optional[SignedBits]:
    """Condition bits equivalent to testing a register against zero, if any.

    Only the integer codes have one; a hardware loop cannot express the
    float codes.
    """
    return _CODE_TO_BITS.get(code)


# === Absolute-value range compares ===

_ABS_RANGE = {
    Predicate.GE: AbsRangeBits.HS, Predicate.OGE: AbsRangeBits.HS, Predicate.UGE: AbsRangeBits.HS,
    Predicate.LT: AbsRangeBits.LO, Predicate.OLT: AbsRangeBits.LO, Predicate.ULT: AbsRangeBits.LO,
    Predicate.GT: AbsRangeBits.HI, Predicate.OGT: AbsRangeBits.HI, Predicate.UGT: AbsRangeBits.HI,
    Predicate.LE: AbsRangeBits.LS, Predicate.OLE: AbsRangeBits.LS, Predicate.ULE: AbsRangeBits.LS,
}

AbsOperand = Union[MachineInst, FImm, Imm, Reg]


def _is_fabs(value) -> bool:
    return isinstance(value, MachineInst) and value.opcode == MOpcode.FABS


def _is_non_negative_const(value) -> bool:
    # NaN fails the comparison, so it never qualifies.
    return isinstance(value, (FImm, Imm)) and value.value >= 0


def abs_conversion(lhs: AbsOperand, rhs: AbsOperand, bits: ConditionBits,
                   predicate: Predicate) -> tuple:
    """Fold fabs() operands of a float compare into a range compare.

    `lhs`/`rhs` are either the instruction producing the value or an
    immediate. When both are FABS results, or one is and the other is a
    non-negative constant, and the predicate is one of >=, <, >, <= in
    ordered or unordered form, returns the operands with the FABS stripped
    (the FABS source operand) and the matching AbsRangeBits. Otherwise
    returns the inputs unchanged.

    Returns:
        (lhs, rhs, bits)
    """
    if not isinstance(bits, (OrderedFloatBits, UnorderedFloatBits)):
        return lhs, rhs, bits
    range_bits = _ABS_RANGE.get(predicate)
    if range_bits is None:
        return lhs, rhs, bits

    if _is_fabs(lhs) and _is_fabs(rhs):
        return lhs.operands[0], rhs.operands[0], range_bits
    if _is_fabs(lhs) and _is_non_negative_const(rhs):
        return lhs.operands[0], rhs, range_bits
    if _is_non_negative_const(lhs) and _is_fabs(rhs):
        return lhs, rhs.operands[0], range_bits
    return lhs, rhs, bits
