"""Recursive descent parser for OpenSCAD.

Converts a token stream into a list of statement nodes. Expression
precedence, loosest first:

    ternary       c ? a : b
    logical or    ||
    logical and   &&
    equality      == !=
    relational    < <= > >=
    additive      + -
    multiplicative * / %
    unary         ! - +
    power         ^ (right associative)
    postfix       f(args)  v[i]  v.x
    primary       literals, identifiers, ( expr ), vectors, ranges
"""
from __future__ import annotations
from typing import Optional

from .errors import ParseError
from .tokens import Token, TokenKind
from .ast.nodes import (
    ASTNode, Expression, Identifier, StringLiteral, NumberLiteral,
    BooleanLiteral, UndefinedLiteral, RangeLiteral, VectorLiteral,
    ParameterDeclaration, Argument, PositionalArgument, NamedArgument,
    Assignment, BinaryOp, UnaryOp, TernaryOp, LetOp, EchoOp, AssertOp,
    FunctionLiteral, PrimaryCall, PrimaryIndex, PrimaryMember,
    VectorElement, ListCompFor, ListCompCFor, ListCompIf, ListCompLet,
    ListCompEach, ListComprehension,
    ModuleInstantiation, ModularCall, ModularFor, ModularIntersectionFor,
    ModularLet, ModularEcho, ModularAssert, ModularIf, ModularBlock,
    ExpressionStatement, ModuleDeclaration, FunctionDeclaration,
    ImportStatement,
)

MODIFIERS = ("!", "#", "%", "*")

# When modifiers are stacked only the strongest one is kept.
_MODIFIER_RANK = {"*": 3, "!": 2, "#": 1, "%": 1}

_EQUALITY_OPS = ("==", "!=")
_RELATIONAL_OPS = ("<", "<=", ">", ">=")
_ADDITIVE_OPS = ("+", "-")
_MULTIPLICATIVE_OPS = ("*", "/", "%")
_UNARY_OPS = ("!", "-", "+")

_COMPREHENSION_KEYWORDS = ("for", "if", "each", "let")


class Parser:
    """Recursive descent parser over a token list.

    Usage:
        statements = Parser(tokenize(source)).parse_program()
    """

    def __init__(self, tokens: list[Token]):
        if not tokens or tokens[-1].kind is not TokenKind.EOF:
            raise ValueError("token list must end with an EOF token")
        self.tokens = tokens
        self.pos = 0

    # --- Token navigation ---

    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind is not TokenKind.EOF:
            self.pos += 1
        return token

    def _at_end(self) -> bool:
        return self._current().kind is TokenKind.EOF

    def _error(self, expected: str, token: Optional[Token] = None) -> ParseError:
        token = token or self._current()
        found = token.describe()
        return ParseError(f"expected {expected}, found {found}", token.position,
                          expected=expected, found=found)

    def _expect_punct(self, lexeme: str) -> Token:
        if self._current().is_punct(lexeme):
            return self._advance()
        raise self._error(f"'{lexeme}'")

    def _expect_op(self, lexeme: str) -> Token:
        if self._current().is_op(lexeme):
            return self._advance()
        raise self._error(f"'{lexeme}'")

    def _expect_keyword(self, name: str) -> Token:
        if self._current().is_keyword(name):
            return self._advance()
        raise self._error(f"'{name}'")

    def _expect_identifier(self) -> Identifier:
        token = self._current()
        if token.kind is not TokenKind.IDENT:
            raise self._error("identifier")
        self._advance()
        return Identifier(name=token.lexeme, position=token.position)

    # --- Statements ---

    def parse_program(self) -> list[ASTNode]:
        """Parse statements until the end of input."""
        statements = []
        while not self._at_end():
            stmt = self.parse_statement()
            if stmt is not None:
                statements.append(stmt)
        return statements

    def parse_statement(self) -> Optional[ASTNode]:
        """Parse one statement. Returns None for an empty statement (``;``)."""
        token = self._current()
        if token.is_punct(";"):
            self._advance()
            return None
        if token.is_punct("{"):
            return ModularBlock(children=self._parse_block(), position=token.position)
        if token.is_keyword("module"):
            return self._parse_module_declaration()
        if token.is_keyword("function") and self._peek().kind is TokenKind.IDENT:
            return self._parse_function_declaration()
        if token.is_keyword("include", "use", "import") and \
                self._peek().kind is TokenKind.STRING:
            self._advance()
            path = self._advance()
            return ImportStatement(kind=token.lexeme, path=path.value, position=token.position)
        if token.kind is TokenKind.IDENT and self._peek().is_op("="):
            assignment = self._parse_assignment()
            self._expect_punct(";")
            return assignment
        if self._starts_instantiation():
            return self._parse_instantiation()
        expr = self.parse_expression()
        self._expect_punct(";")
        return ExpressionStatement(expr=expr, position=token.position)

    def _starts_instantiation(self) -> bool:
        token = self._current()
        if token.is_op(*MODIFIERS):
            return True
        if token.is_keyword("for", "intersection_for", "if", "let", "echo", "assert"):
            return True
        if token.kind is TokenKind.IDENT or token.is_keyword("import"):
            return self._peek().is_punct("(")
        return False

    def _parse_block(self) -> list[ASTNode]:
        self._expect_punct("{")
        statements = []
        while not self._current().is_punct("}"):
            if self._at_end():
                raise self._error("'}'")
            stmt = self.parse_statement()
            if stmt is not None:
                statements.append(stmt)
        self._advance()
        return statements

    def _parse_child(self) -> list[ASTNode]:
        """Parse the child statement(s) following a module instantiation."""
        token = self._current()
        if token.is_punct(";"):
            self._advance()
            return []
        if token.is_punct("{"):
            return self._parse_block()
        stmt = self.parse_statement()
        return [] if stmt is None else [stmt]

    def _parse_module_declaration(self) -> ModuleDeclaration:
        start = self._expect_keyword("module")
        name = self._expect_identifier()
        parameters = self._parse_parameters()
        children = self._parse_child()
        return ModuleDeclaration(name=name, parameters=parameters, children=children,
                                 position=start.position)

    def _parse_function_declaration(self) -> FunctionDeclaration:
        start = self._expect_keyword("function")
        name = self._expect_identifier()
        parameters = self._parse_parameters()
        self._expect_op("=")
        expr = self.parse_expression()
        self._expect_punct(";")
        return FunctionDeclaration(name=name, parameters=parameters, expr=expr,
                                   position=start.position)

    def _parse_instantiation(self) -> ModuleInstantiation:
        token = self._current()
        if token.is_op(*MODIFIERS):
            self._advance()
            inst = self._parse_instantiation()
            inner = inst.modifier
            if inner is None or _MODIFIER_RANK[token.lexeme] >= _MODIFIER_RANK[inner]:
                inst.modifier = token.lexeme
            inst.position = token.position
            return inst
        if token.is_keyword("for", "intersection_for"):
            self._advance()
            assignments = self._parse_assignment_list()
            children = self._parse_child()
            node_class = ModularFor if token.lexeme == "for" else ModularIntersectionFor
            return node_class(assignments=assignments, children=children,
                              position=token.position)
        if token.is_keyword("if"):
            self._advance()
            self._expect_punct("(")
            condition = self.parse_expression()
            self._expect_punct(")")
            true_branch = self._parse_child()
            false_branch = None
            if self._current().is_keyword("else"):
                self._advance()
                false_branch = self._parse_child()
            return ModularIf(condition=condition, true_branch=true_branch,
                             false_branch=false_branch, position=token.position)
        if token.is_keyword("let"):
            self._advance()
            assignments = self._parse_assignment_list()
            return ModularLet(assignments=assignments, children=self._parse_child(),
                              position=token.position)
        if token.is_keyword("echo", "assert"):
            self._advance()
            arguments = self._parse_arguments()
            children = self._parse_child()
            node_class = ModularEcho if token.lexeme == "echo" else ModularAssert
            return node_class(arguments=arguments, children=children,
                              position=token.position)
        if (token.kind is TokenKind.IDENT or token.is_keyword("import")) and \
                self._peek().is_punct("("):
            self._advance()
            name = Identifier(name=token.lexeme, position=token.position)
            arguments = self._parse_arguments()
            children = self._parse_child()
            return ModularCall(name=name, arguments=arguments, children=children,
                               position=token.position)
        raise self._error("module instantiation")

    # --- Parameters, arguments and assignment lists ---

    def _parse_parameters(self) -> list[ParameterDeclaration]:
        self._expect_punct("(")
        parameters = []
        while not self._current().is_punct(")"):
            name = self._expect_identifier()
            default = None
            if self._current().is_op("="):
                self._advance()
                default = self.parse_expression()
            parameters.append(ParameterDeclaration(name=name, default=default,
                                                   position=name.position))
            if not self._current().is_punct(","):
                break
            self._advance()
        self._expect_punct(")")
        return parameters

    def _parse_arguments(self) -> list[Argument]:
        self._expect_punct("(")
        arguments: list[Argument] = []
        while not self._current().is_punct(")"):
            token = self._current()
            if token.kind is TokenKind.IDENT and self._peek().is_op("="):
                name = self._expect_identifier()
                self._advance()
                arguments.append(NamedArgument(name=name, expr=self.parse_expression(),
                                               position=token.position))
            else:
                arguments.append(PositionalArgument(expr=self.parse_expression(),
                                                    position=token.position))
            if not self._current().is_punct(","):
                break
            self._advance()
        self._expect_punct(")")
        return arguments

    def _parse_assignment(self) -> Assignment:
        name = self._expect_identifier()
        self._expect_op("=")
        expr = self.parse_expression()
        return Assignment(name=name, expr=expr, position=name.position)

    def _parse_assignments_until(self, *terminators: str) -> list[Assignment]:
        assignments = []
        while not self._current().is_punct(*terminators):
            assignments.append(self._parse_assignment())
            if not self._current().is_punct(","):
                break
            self._advance()
        return assignments

    def _parse_assignment_list(self) -> list[Assignment]:
        self._expect_punct("(")
        assignments = self._parse_assignments_until(")")
        self._expect_punct(")")
        return assignments

    # --- Expressions ---

    def parse_expression(self) -> Expression:
        """Parse a full expression, including let/assert/echo/function forms."""
        token = self._current()
        if token.is_keyword("let"):
            self._advance()
            assignments = self._parse_assignment_list()
            return LetOp(assignments=assignments, body=self.parse_expression(),
                         position=token.position)
        if token.is_keyword("assert", "echo"):
            self._advance()
            arguments = self._parse_arguments()
            body = self.parse_expression() if self._starts_expression() else None
            node_class = AssertOp if token.lexeme == "assert" else EchoOp
            return node_class(arguments=arguments, body=body, position=token.position)
        if token.is_keyword("function"):
            self._advance()
            parameters = self._parse_parameters()
            return FunctionLiteral(parameters=parameters, body=self.parse_expression(),
                                   position=token.position)
        condition = self._parse_logical_or()
        if self._current().is_op("?"):
            self._advance()
            true_expr = self.parse_expression()
            self._expect_op(":")
            false_expr = self.parse_expression()
            return TernaryOp(condition=condition, true_expr=true_expr,
                             false_expr=false_expr, position=token.position)
        return condition

    def _starts_expression(self) -> bool:
        token = self._current()
        if token.kind in (TokenKind.NUMBER, TokenKind.STRING, TokenKind.IDENT):
            return True
        if token.is_keyword("true", "false", "undef", "let", "assert", "echo", "function"):
            return True
        return token.is_punct("(", "[") or token.is_op(*_UNARY_OPS)

    def _parse_binary_level(self, operators: tuple[str, ...], operand) -> Expression:
        left = operand()
        while self._current().is_op(*operators):
            op_token = self._advance()
            right = operand()
            left = BinaryOp(op=op_token.lexeme, left=left, right=right,
                            position=op_token.position)
        return left

    def _parse_logical_or(self) -> Expression:
        return self._parse_binary_level(("||",), self._parse_logical_and)

    def _parse_logical_and(self) -> Expression:
        return self._parse_binary_level(("&&",), self._parse_equality)

    def _parse_equality(self) -> Expression:
        return self._parse_binary_level(_EQUALITY_OPS, self._parse_relational)

    def _parse_relational(self) -> Expression:
        return self._parse_binary_level(_RELATIONAL_OPS, self._parse_additive)

    def _parse_additive(self) -> Expression:
        return self._parse_binary_level(_ADDITIVE_OPS, self._parse_multiplicative)

    def _parse_multiplicative(self) -> Expression:
        return self._parse_binary_level(_MULTIPLICATIVE_OPS, self._parse_unary)

    def _parse_unary(self) -> Expression:
        token = self._current()
        if token.is_op(*_UNARY_OPS):
            self._advance()
            return UnaryOp(op=token.lexeme, expr=self._parse_unary(), position=token.position)
        return self._parse_power()

    def _parse_power(self) -> Expression:
        base = self._parse_postfix()
        if self._current().is_op("^"):
            op_token = self._advance()
            exponent = self._parse_unary()
            return BinaryOp(op="^", left=base, right=exponent, position=op_token.position)
        return base

    def _parse_postfix(self) -> Expression:
        expr = self._parse_primary()
        while True:
            token = self._current()
            if token.is_punct("("):
                expr = PrimaryCall(left=expr, arguments=self._parse_arguments(),
                                   position=token.position)
            elif token.is_punct("["):
                self._advance()
                index = self.parse_expression()
                self._expect_punct("]")
                expr = PrimaryIndex(left=expr, index=index, position=token.position)
            elif token.is_punct("."):
                self._advance()
                member = self._expect_identifier()
                expr = PrimaryMember(left=expr, member=member, position=token.position)
            else:
                return expr

    def _parse_primary(self) -> Expression:
        token = self._current()
        if token.kind is TokenKind.NUMBER:
            self._advance()
            return NumberLiteral(val=token.value, position=token.position)
        if token.kind is TokenKind.STRING:
            self._advance()
            return StringLiteral(val=token.value, position=token.position)
        if token.kind is TokenKind.IDENT:
            self._advance()
            return Identifier(name=token.lexeme, position=token.position)
        if token.is_keyword("true", "false"):
            self._advance()
            return BooleanLiteral(val=token.lexeme == "true", position=token.position)
        if token.is_keyword("undef"):
            self._advance()
            return UndefinedLiteral(position=token.position)
        if token.is_punct("("):
            self._advance()
            expr = self.parse_expression()
            self._expect_punct(")")
            return expr
        if token.is_punct("["):
            return self._parse_vector()
        raise self._error("expression")

    # --- Vectors, ranges and comprehensions ---

    def _parse_vector(self) -> Expression:
        start = self._expect_punct("[")
        if self._current().is_punct("]"):
            self._advance()
            return VectorLiteral(elements=[], position=start.position)

        first = self._parse_vector_item()
        if isinstance(first, Expression) and self._current().is_op(":"):
            self._advance()
            second = self.parse_expression()
            if self._current().is_op(":"):
                self._advance()
                third = self.parse_expression()
                self._expect_punct("]")
                return RangeLiteral(start=first, step=second, end=third,
                                    position=start.position)
            self._expect_punct("]")
            return RangeLiteral(start=first, step=None, end=second, position=start.position)

        elements = [first]
        while self._current().is_punct(","):
            self._advance()
            if self._current().is_punct("]"):
                break
            elements.append(self._parse_vector_item())
        self._expect_punct("]")
        if any(isinstance(elem, VectorElement) for elem in elements):
            return ListComprehension(elements=elements, position=start.position)
        return VectorLiteral(elements=elements, position=start.position)

    def _parse_vector_item(self):
        token = self._current()
        if token.is_keyword("for"):
            return self._parse_comprehension_for()
        if token.is_keyword("if"):
            self._advance()
            self._expect_punct("(")
            condition = self.parse_expression()
            self._expect_punct(")")
            true_expr = self._parse_vector_item()
            false_expr = None
            if self._current().is_keyword("else"):
                self._advance()
                false_expr = self._parse_vector_item()
            return ListCompIf(condition=condition, true_expr=true_expr,
                              false_expr=false_expr, position=token.position)
        if token.is_keyword("each"):
            self._advance()
            return ListCompEach(body=self._parse_vector_item(), position=token.position)
        if token.is_keyword("let"):
            self._advance()
            assignments = self._parse_assignment_list()
            return ListCompLet(assignments=assignments, body=self._parse_vector_item(),
                               position=token.position)
        if token.is_punct("(") and self._peek().is_keyword("for", "if", "each"):
            self._advance()
            item = self._parse_vector_item()
            self._expect_punct(")")
            return item
        return self.parse_expression()

    def _parse_comprehension_for(self) -> VectorElement:
        start = self._expect_keyword("for")
        self._expect_punct("(")
        initial = self._parse_assignments_until(")", ";")
        if self._current().is_punct(";"):
            self._advance()
            condition = self.parse_expression()
            self._expect_punct(";")
            increment = self._parse_assignments_until(")")
            self._expect_punct(")")
            return ListCompCFor(initial=initial, condition=condition, increment=increment,
                                body=self._parse_vector_item(), position=start.position)
        self._expect_punct(")")
        return ListCompFor(assignments=initial, body=self._parse_vector_item(),
                           position=start.position)


def parse(tokens: list[Token]) -> list[ASTNode]:
    """Parse a token list into a list of top-level statements.

    Args:
        tokens: Tokens as returned by :func:`~openscad_engine.lexer.tokenize`.

    Returns:
        The top-level statement nodes, in source order.

    Raises:
        ParseError: On the first grammar violation.
    """
    return Parser(tokens).parse_program()
