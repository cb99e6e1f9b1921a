
# Import all AST nodes from nodes
from .nodes import (
    ASTNode,
    Expression,
    Primary,
    Identifier,
    StringLiteral,
    NumberLiteral,
    BooleanLiteral,
    UndefinedLiteral,
    ParameterDeclaration,
    Argument,
    PositionalArgument,
    NamedArgument,
    RangeLiteral,
    VectorLiteral,
    Assignment,
    BinaryOp,
    UnaryOp,
    TernaryOp,
    LetOp,
    EchoOp,
    AssertOp,
    FunctionLiteral,
    PrimaryCall,
    PrimaryIndex,
    PrimaryMember,
    VectorElement,
    VectorItem,
    ListCompLet,
    ListCompEach,
    ListCompFor,
    ListCompCFor,
    ListCompIf,
    ListComprehension,
    ModuleInstantiation,
    ModularCall,
    ModularFor,
    ModularIntersectionFor,
    ModularLet,
    ModularEcho,
    ModularAssert,
    ModularIf,
    ModularBlock,
    ExpressionStatement,
    ModuleDeclaration,
    FunctionDeclaration,
    ImportStatement,
    format_statement,
    format_program,
)

# Import serialization functions
from .serialization import (
    ast_to_dict,
    ast_to_json,
    ast_from_dict,
    ast_from_json,
    ast_to_yaml,
    ast_from_yaml,
)


# --- AST convenience functions ---

def parse_ast(code: str, origin: str = "<string>") -> list[ASTNode]:
    """Tokenize and parse code, returning the top-level statements.

    This is the main public API for converting OpenSCAD code to an AST.

    Args:
        code: The OpenSCAD code string to parse
        origin: Origin identifier used in node positions (default: "<string>").

    Raises:
        LexError: If the code cannot be tokenized.
        ParseError: On the first grammar violation.
    """
    # Imported here: the parser itself imports the node classes from this package.
    from ..lexer import tokenize
    from ..parser import parse
    return parse(tokenize(code, origin))


def getASTfromString(code: str, origin: str = "<string>") -> list[ASTNode]:
    """Parse OpenSCAD source code from a string and return its AST.

    Args:
        code: The OpenSCAD source code to be parsed.
        origin: Origin identifier for source location tracking (default: "<string>").

    Returns:
        The list of top-level statement nodes. Empty for empty code.

    Example:
        ast = getASTfromString("cube([1,2,3]);")
    """
    return parse_ast(code, origin)
