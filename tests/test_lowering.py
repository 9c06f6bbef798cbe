"""
Tree lowering tests: parse tree → IR Module.

Covers access resolution (sections, inline keywords, the private default),
receiver removal under both self policies, void parameter lists, generics,
typedef aliases, inheritance and shape diagnostics.
"""

import os
import sys
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cplus.config import SelfPolicy
from cplus.diagnostics import SHAPE, DiagnosticSink
from cplus.grammar import parse
from cplus.ir import Access, Class, Field, Interface, Method, Module, Param, format_module
from cplus.lowering import drop_self, is_self_type, lower_tree

FIXTURES = os.path.join(PROJECT_ROOT, "tests", "fixtures")


def lower_fixture(name: str, policy: SelfPolicy = SelfPolicy.NAME, sink=None) -> Module:
    with open(os.path.join(FIXTURES, name), "r", encoding="utf-8") as f:
        source = f.read()
    return lower_tree(parse(source, input_name=name), name, policy, sink)


def lower_text(source: str, policy: SelfPolicy = SelfPolicy.NAME, sink=None) -> Module:
    return lower_tree(parse(source), "<test>", policy, sink)


class TestDemoModule(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.sink = DiagnosticSink("demo.cplus.h")
        cls.module = lower_fixture("demo.cplus.h", sink=cls.sink)

    def test_declaration_order(self):
        self.assertEqual([i.name for i in self.module.interfaces], ["IStartable"])
        self.assertEqual([c.name for c in self.module.classes], ["Device", "Motor"])

    def test_interface_methods(self):
        itf = self.module.interface("IStartable")
        self.assertEqual(
            itf.methods,
            [Method(return_type="void", name="start"), Method(return_type="void", name="stop")],
        )

    def test_sections_assign_access(self):
        device = self.module.class_("Device")
        self.assertEqual([(m.name, m.access) for m in device.methods],
                         [("power_on", Access.PUBLIC), ("power_off", Access.PUBLIC)])
        self.assertEqual(device.fields, [
            Field(type="int", name="voltage", access=Access.PROTECTED, declarator="voltage"),
            Field(type="bool", name="status", access=Access.PRIVATE, declarator="status"),
        ])

    def test_inheritance(self):
        motor = self.module.class_("Motor")
        self.assertEqual(motor.base, "Device")
        self.assertEqual(motor.implemented_interfaces, ["IStartable"])
        set_speed = motor.method("set_speed")
        self.assertEqual(set_speed.params, [Param(type="int", name="rpm", declarator="rpm")])

    def test_no_diagnostics(self):
        self.assertEqual(len(self.sink), 0)

    def test_module_listing(self):
        listing = format_module(self.module)
        self.assertIn("interface IStartable {\n    void start();\n    void stop();\n};", listing)
        self.assertIn("class Motor extends Device implements IStartable {", listing)
        self.assertIn("protected:\n    int current_rpm;", listing)


class TestSelfPolicy(unittest.TestCase):

    def test_name_policy_matches_demo(self):
        """Written-out receivers named self are dropped, leaving the demo shapes."""
        explicit = lower_fixture("explicit_self.cplus.h")
        demo = lower_fixture("demo.cplus.h")
        self.assertEqual(explicit.interface("IStartable").methods,
                         demo.interface("IStartable").methods)
        motor = explicit.class_("Motor")
        self.assertEqual([m.name for m in motor.methods],
                         ["init", "deinit", "start", "stop", "set_speed"])
        self.assertEqual(motor.method("set_speed").params,
                         demo.class_("Motor").method("set_speed").params)

    def test_unlabeled_member_is_private(self):
        device = lower_fixture("explicit_self.cplus.h").class_("Device")
        self.assertEqual(device.method("power_on").access, Access.PUBLIC)
        self.assertEqual(device.method("power_off").access, Access.PRIVATE)

    def test_type_policy_drops_pointer_to_owner(self):
        module = lower_text(
            "class Foo {\n"
            "    public void a(Foo *other, int x);\n"
            "    public void b(int x, Foo *other);\n"
            "    public void c(const class Foo *me);\n"
            "};\n",
            SelfPolicy.TYPE,
        )
        foo = module.class_("Foo")
        self.assertEqual([p.name for p in foo.method("a").params], ["x"])
        self.assertEqual([p.name for p in foo.method("b").params], ["x", "other"])
        self.assertEqual(foo.method("c").params, [])

    def test_name_policy_keeps_other_receivers(self):
        foo = lower_text("class Foo { public void a(Foo *other); };").class_("Foo")
        self.assertEqual([p.name for p in foo.method("a").params], ["other"])

    def test_type_policy_interface_void_receiver(self):
        module = lower_fixture("explicit_self.cplus.h", SelfPolicy.TYPE)
        self.assertEqual(module.interface("IStartable").methods[0].params, [])

    def test_is_self_type(self):
        self.assertTrue(is_self_type("Foo *", "Foo"))
        self.assertTrue(is_self_type("Foo*", "Foo"))
        self.assertTrue(is_self_type("class Foo *", "Foo"))
        self.assertTrue(is_self_type("Foo<T> *", "Foo"))
        self.assertTrue(is_self_type("Foo_ref", "Foo"))
        self.assertTrue(is_self_type("void *", "IFoo", owner_is_interface=True))
        self.assertFalse(is_self_type("void *", "Foo"))
        self.assertFalse(is_self_type("Foo", "Foo"))
        self.assertFalse(is_self_type("FooBar *", "Foo"))

    def test_drop_self_only_first_param_under_type_policy(self):
        params = [Param(type="int", name="x"), Param(type="Foo *", name="f")]
        self.assertEqual(drop_self(params, "Foo", SelfPolicy.TYPE), params)


class TestParams(unittest.TestCase):

    def test_void_means_no_params(self):
        module = lower_fixture("extends_implements.cplus.h")
        self.assertEqual(module.interface("IFoo").methods[0].params, [])
        self.assertEqual(module.class_("Derived").method("foo").params, [])

    def test_unnamed_and_variadic_params(self):
        cls = lower_text("class Log { public int printf(const char *, ...); };").class_("Log")
        self.assertEqual(cls.method("printf").params, [
            Param(type="const char *"),
            Param(type="..."),
        ])

    def test_function_pointer_param(self):
        cls = lower_text("class Sorter { public void sort(int (*cmp)(int a, int b)); };").class_("Sorter")
        self.assertEqual(cls.method("sort").params, [
            Param(type="int", name="cmp", declarator="(*cmp)(int a, int b)"),
        ])


class TestGenericsAndAliases(unittest.TestCase):

    def test_generic_type_params(self):
        module = lower_fixture("generics_typename_arrays.cplus.h")
        self.assertEqual(module.interface("IVec").type_params, ["T"])
        vector = module.class_("Vector")
        self.assertEqual(vector.type_params, ["T"])
        create = vector.method("create")
        self.assertTrue(create.is_static)
        self.assertEqual(create.return_type, "Vector<T>*")
        self.assertEqual(vector.method("getAt").params,
                         [Param(type="int", name="i", declarator="i")])

    def test_typename_keyword(self):
        module = lower_text("class Pair<typename A, typename B> { public A first; };")
        self.assertEqual(module.class_("Pair").type_params, ["A", "B"])

    def test_array_and_pointer_fields(self):
        matrix = lower_fixture("generics_typename_arrays.cplus.h").class_("Matrix")
        self.assertEqual(matrix.fields, [
            Field(type="T **", name="cells", access=Access.PUBLIC, declarator="cells[]"),
            Field(type="int", name="dims", access=Access.PUBLIC, declarator="dims[3]"),
        ])

    def test_generic_field_types(self):
        bag = lower_fixture("generics_list_map.cplus.h").class_("Bag")
        self.assertEqual([(f.type, f.name, f.access) for f in bag.fields], [
            ("List<int>", "data", Access.PUBLIC),
            ("Map<Key,Value>", "dict", Access.PROTECTED),
            ("int", "capacity", Access.PRIVATE),
        ])

    def test_typedef_alias(self):
        module = lower_fixture("typedef_class_interface.cplus.h")
        self.assertEqual(module.interface("ICounter").alias, "ICounter")
        counter = module.class_("Counter")
        self.assertEqual(counter.alias, "Counter")
        self.assertEqual([m.name for m in counter.methods], ["create", "inc", "value"])
        self.assertEqual(counter.method("inc").params, [])

    def test_multiple_implements(self):
        derived = lower_fixture("extends_implements.cplus.h").class_("Derived")
        self.assertEqual(derived.base, "Base")
        self.assertEqual(derived.implemented_interfaces, ["IFoo", "IBar"])

    def test_multi_declarator_field(self):
        cls = lower_text("class P { int *a, *b, c; };").class_("P")
        self.assertEqual([(f.type, f.decl()) for f in cls.fields],
                         [("int *", "a"), ("int", "*b"), ("int", "c")])

    def test_static_field(self):
        cls = lower_text("class Pool { public static int count; };").class_("Pool")
        self.assertTrue(cls.fields[0].is_static)


class TestShapeDiagnostics(unittest.TestCase):

    def test_duplicate_declaration_dropped(self):
        sink = DiagnosticSink("<test>")
        module = lower_text(
            "interface I { void f(); };\ninterface I { void g(); };\n", sink=sink
        )
        self.assertEqual(len(module.interfaces), 1)
        self.assertEqual(module.interfaces[0].methods[0].name, "f")
        shape = sink.by_category(SHAPE)
        self.assertEqual(len(shape), 1)
        self.assertEqual(shape[0].line, 2)

    def test_c_only_input_is_empty(self):
        module = lower_fixture("c_chunk_mixed.cplus.h")
        self.assertTrue(module.is_empty())

    def test_module_is_independent_of_tree(self):
        module = lower_fixture("demo.cplus.h")
        copy = Module.model_validate(module.model_dump())
        self.assertEqual(copy, module)
        self.assertIsInstance(copy.classes[0], Class)
        self.assertIsInstance(copy.interfaces[0], Interface)


if __name__ == "__main__":
    unittest.main()
