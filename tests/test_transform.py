"""
Translation-unit mode: one C text stream per input.

Classes become struct typedefs plus renamed prototypes taking a ``Name_ref``
receiver, interfaces become vtable typedefs, and every other top-level item
is echoed from the source.  Function definitions that take a ``Foo_ref``
first parameter are checked against the ``Foo_method`` naming convention.
"""

import os
import sys
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cplus.c_check import check_c
from cplus.codegen import emit_translation_unit
from cplus.diagnostics import CONVENTION
from cplus.grammar import parse
from cplus.translator import Translator

FIXTURES = os.path.join(PROJECT_ROOT, "tests", "fixtures")

COUNTER_UNIT_C = """\
#include <stdio.h>
typedef struct IStep_vtable {
    void (*step)(void *self);
} IStep_vtable;
typedef struct Counter Counter;
typedef Counter Counter_ref[1];
struct Counter {
    int value;
};
void Counter_inc(Counter_ref self);
Counter *Counter_create(int start);
int helper(int x) { return x + 1; }
void Counter_inc(Counter_ref self) { self->value++; }
void bump(Counter_ref self) { self->value += 2; }
"""


def transform(source: str):
    return emit_translation_unit(parse(source, "translation_unit", "<unit>"), source, "<unit>")


class TestCounterUnit(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.result = Translator().transform_file(os.path.join(FIXTURES, "counter_unit.cplus.h"))

    def test_output_text(self):
        self.assertEqual(self.result.text, COUNTER_UNIT_C)

    def test_convention_warning(self):
        warnings = [d for d in self.result.diagnostics if d.category == CONVENTION]
        self.assertEqual(len(warnings), 1)
        self.assertEqual(
            warnings[0].message,
            "function 'bump' has first parameter of type 'Counter_ref'; did you mean 'Counter_bump(...)'?",
        )
        self.assertEqual((warnings[0].line, warnings[0].column), (18, 6))

    def test_output_is_valid_c(self):
        self.assertEqual(check_c(self.result.text), [])


class TestPassThrough(unittest.TestCase):

    def test_plain_c_is_echoed(self):
        with open(os.path.join(FIXTURES, "c_chunk_mixed.cplus.h"), "r", encoding="utf-8") as f:
            source = f.read()
        result = transform(source)
        self.assertEqual(result.text, (
            "#define SOME_MACRO 42\n"
            "extern int some_c_symbol;\n"
            "typedef int (*cmp_fn)(const void*, const void*);\n"
            "struct FooTag;\n"
        ))
        self.assertEqual(result.diagnostics, [])

    def test_definitions_keep_their_layout(self):
        source = "static int twice(int v)\n{\n    return v * 2;   /* doubled */\n}\n"
        self.assertEqual(transform(source).text, source)

    def test_switch_function_is_echoed(self):
        source = "int f(int x) { switch (x) { case 1: return 2; default: return 0; } }\n"
        result = transform(source)
        self.assertEqual(result.text, source)
        self.assertEqual(result.diagnostics, [])

    def test_labels_and_goto_are_echoed(self):
        source = (
            "int g(int n)\n"
            "{\n"
            "    if (n < 0) goto fail;\n"
            "    return n >> 1;\n"
            "fail:\n"
            "    return -1;\n"
            "}\n"
        )
        self.assertEqual(transform(source).text, source)


class TestClassEmission(unittest.TestCase):

    def test_access_and_static_members(self):
        result = transform(
            "class P {\n"
            "    public static int n;\n"
            "    private int *a, b;\n"
            "    public static P *make(void);\n"
            "};\n"
        )
        self.assertEqual(result.text, (
            "typedef struct P P;\n"
            "typedef P P_ref[1];\n"
            "struct P {\n"
            "    int *a, b;\n"
            "};\n"
            "extern int P_n;\n"
            "P *P_make(void);\n"
        ))

    def test_explicit_self_is_replaced_by_ref(self):
        result = transform("class M { public: void go(M *self, int speed); };")
        self.assertIn("void M_go(M_ref self, int speed);\n", result.text)

    def test_unknown_method_warning(self):
        result = transform(
            "class Counter { public: void inc(); };\n"
            "void Counter_reset(Counter_ref self) { }\n"
        )
        self.assertEqual(len(result.diagnostics), 1)
        self.assertIn("does not match any method declared in class 'Counter'",
                      result.diagnostics[0].message)

    def test_registry_is_per_call(self):
        transform("class Counter { public: void inc(); };")
        result = transform("void Counter_reset(Counter_ref self) { }\n")
        self.assertEqual(result.diagnostics, [])

    def test_bom_is_not_echoed(self):
        result = transform("\ufeffint x;\n")
        self.assertEqual(result.text, "int x;\n")


if __name__ == "__main__":
    unittest.main()
