"""
Transforms the raw parser AST into a semantic AST using sonus_datatypes.
"""

from sonus.sonus_datatypes import (
    Number, String, Identifier, Unary, Binary, KeywordArgument,
    Invocation, Assignment, Definition, Empty
)


class SonusTransformer:
    def _attach_loc(self, obj, node):
        line = node.get('line'); col = node.get('col')
        if line is not None and col is not None and hasattr(obj, '__dict__'):
            obj.loc = {'line': line, 'col': col, 'tag': node.get('tag'), 'text': node.get('text')}
        return obj

    def transform(self, node: object) -> object:
        """Converts a koine AST (or a list of them) into AST nodes.

        The `program` root becomes a list of statement nodes.
        """
        if isinstance(node, list):
            return [self.transform(n) for n in node]

        # Primitives already in final form
        if not isinstance(node, dict):
            return node

        tag = node.get('tag')
        children = node.get('children', [])

        match tag:
            case 'program':
                return [self.transform(c) for c in children]

            # Atomics
            case 'number':
                return self._attach_loc(Number(float(node['text'])), node)
            case 'string':
                return self._attach_loc(String(node['text'][1:-1]), node)
            case 'identifier':
                return self._attach_loc(Identifier(node['text']), node)
            case 'group':
                # `()` is the empty expression; otherwise parentheses only group
                if not children:
                    return self._attach_loc(Empty(), node)
                return self.transform(children[0])

            # Operators
            case 'binary_op':
                op = node['op']
                expr = Binary(op['text'], self.transform(node['left']), self.transform(node['right']))
                return self._attach_loc(expr, op)
            case 'unary':
                op = children['op']
                return self._attach_loc(Unary(op['text'], self.transform(children['operand'])), node)

            # Calls: `f(a)(b)` is a chain of invocations on the same callee
            case 'postfix':
                expr = self.transform(children['callee'])
                calls = children.get('calls') or []
                if isinstance(calls, dict):
                    calls = [calls]
                for call in calls:
                    args = [self.transform(a) for a in call.get('children') or []]
                    expr = self._attach_loc(Invocation(expr, args), node)
                return expr
            case 'keyword':
                name = children['name']['text']
                return self._attach_loc(KeywordArgument(name, self.transform(children['value'])), node)

            # Statements
            case 'assignment':
                name = children['target']['text']
                return self._attach_loc(Assignment(name, self.transform(children['value'])), node)
            case 'definition':
                name = children['name']['text']
                params = [p['text'] for p in (children['params'].get('children') or [])]
                return self._attach_loc(Definition(name, params, self.transform(children['body'])), node)

        raise ValueError(f"Unknown parse node tag: {tag!r}")
