"""
Artifact-mode code generation tests.

  1. Exact interface and class headers for the demo input
  2. Receiver elision: explicit and implicit self converge
  3. Vtable instances, static members and stub bodies
  4. Access keywords never reach the generated C
  5. Empty declarations still emit well-formed C
  6. tree-sitter-c verification of every generated artifact
"""

import os
import sys
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cplus.c_check import check_c, declared_functions, struct_fields
from cplus.codegen import declare, emit_module, guard_macro, normalize_type, render_params
from cplus.diagnostics import SHAPE, VERIFICATION, DiagnosticSink
from cplus.grammar import parse
from cplus.ir import Class, Interface, Method, Module, Param
from cplus.lowering import lower_tree

FIXTURES = os.path.join(PROJECT_ROOT, "tests", "fixtures")


def module_of(source: str, input_name: str = "<test>") -> Module:
    return lower_tree(parse(source, input_name=input_name), input_name)


def module_of_fixture(name: str) -> Module:
    with open(os.path.join(FIXTURES, name), "r", encoding="utf-8") as f:
        return module_of(f.read(), name)


ISTARTABLE_H = """\
/*
\tFILE: IStartable.h
\tDESCRIPTION: public definitions of IStartable
\tGENERATED FROM: demo.cplus.h
*/

#ifndef ISTARTABLE_H
#define ISTARTABLE_H


#include <stdbool.h>

typedef struct IStartable_vtable {
    void (*start)(void *self);
    void (*stop)(void *self);
} IStartable_vtable;

#endif /* ISTARTABLE_H */
"""

DEVICE_GEN_H = """\
/*
\tFILE: Device.gen.h
\tDESCRIPTION: public definitions of Device
\tGENERATED FROM: demo.cplus.h
*/

#ifndef DEVICE_GEN_H
#define DEVICE_GEN_H


#include <stdbool.h>

#include <stdlib.h>

typedef struct Device {
    const struct Device__meta_s *meta;
    int voltage;
    bool status;
} Device;

void Device_power_on(Device *self);
void Device_power_off(Device *self);
void Device__sys_init(void);
void Device__sys_deinit(void);

#endif /* DEVICE_GEN_H */
"""

MOTOR_GEN_H_BODY = """\
#include "Device.gen.h"
#include "IStartable.h"

typedef struct Motor {
    const struct Motor__meta_s *meta;
    int current_rpm;
    bool enabled;
} Motor;

void Motor_start(Motor *self);
void Motor_stop(Motor *self);
void Motor_set_speed(Motor *self, int rpm);
void Motor__sys_init(void);
void Motor__sys_deinit(void);
"""


class TestDemoArtifacts(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.module = module_of_fixture("demo.cplus.h")
        cls.sink = DiagnosticSink("demo.cplus.h")
        cls.result = emit_module(cls.module, verify=True, sink=cls.sink)

    def test_file_order(self):
        self.assertEqual(list(self.result.files), [
            "IStartable.h",
            "Device.gen.h", "Device.gen.c",
            "Motor.gen.h", "Motor.gen.c",
        ])

    def test_interface_header(self):
        self.assertEqual(self.result.files["IStartable.h"], ISTARTABLE_H)

    def test_class_header(self):
        self.assertEqual(self.result.files["Device.gen.h"], DEVICE_GEN_H)

    def test_derived_class_header_includes_base_and_interfaces(self):
        self.assertIn(MOTOR_GEN_H_BODY, self.result.files["Motor.gen.h"])

    def test_class_source(self):
        source = self.result.files["Motor.gen.c"]
        self.assertIn('#include "Motor.gen.h"\n', source)
        self.assertIn("struct Motor__meta_s {\n    const char *name;\n    size_t size;\n};\n", source)
        self.assertIn('static const struct Motor__meta_s Motor__meta = { "Motor", sizeof(Motor) };\n', source)
        self.assertIn(
            "void Motor_set_speed(Motor *self, int rpm)\n{\n"
            "    /* TODO: generated body */\n    return;\n}\n",
            source,
        )
        self.assertIn("void Motor__sys_init(void) {\n", source)
        self.assertIn("void Motor__sys_deinit(void) {\n", source)

    def test_vtable_instance(self):
        source = self.result.files["Motor.gen.c"]
        self.assertIn(
            "static const IStartable_vtable Motor__IStartable_vtable = {\n"
            "    .start = (void (*)(void *self))Motor_start,\n"
            "    .stop = (void (*)(void *self))Motor_stop,\n"
            "};\n",
            source,
        )
        self.assertIn("(void)Motor__IStartable_vtable;", source)
        self.assertNotIn("__IStartable_vtable", self.result.files["Device.gen.c"])

    def test_generated_c_parses(self):
        self.assertEqual(self.result.diagnostics, [])
        for name, content in self.result.files.items():
            with self.subTest(artifact=name):
                self.assertEqual(check_c(content), [])

    def test_prototypes_match_struct_fields(self):
        header = self.result.files["Motor.gen.h"]
        self.assertEqual(struct_fields(header, "Motor"), [
            "const struct Motor__meta_s *meta;",
            "int current_rpm;",
            "bool enabled;",
        ])
        self.assertEqual(declared_functions(header), [
            "Motor_start", "Motor_stop", "Motor_set_speed",
            "Motor__sys_init", "Motor__sys_deinit",
        ])


class TestGenerationProperties(unittest.TestCase):

    def test_single_class_layout(self):
        files = emit_module(module_of("class Foo { public: int x; void m(); };")).files
        header = files["Foo.gen.h"]
        self.assertEqual(struct_fields(header, "Foo")[1], "int x;")
        self.assertIn("void Foo_m(Foo *self);\n", header)

    def test_interface_entry_shape(self):
        header = emit_module(module_of("interface I { T m(A a); };")).files["I.h"]
        self.assertIn("typedef struct I_vtable {\n    T (*m)(void *self, A a);\n} I_vtable;\n", header)

    def test_explicit_and_implicit_self_converge(self):
        explicit = emit_module(module_of(
            "class Accumulator { public: int add(Accumulator *self, int v); };"
        )).files["Accumulator.gen.h"]
        implicit = emit_module(module_of(
            "class Accumulator { public: int add(int v); };"
        )).files["Accumulator.gen.h"]
        self.assertIn("int Accumulator_add(Accumulator *self, int v);\n", explicit)
        self.assertEqual(explicit, implicit)

    def test_access_keywords_do_not_reach_c(self):
        files = emit_module(module_of(
            "class A {\n"
            "public: int a; void pa();\n"
            "protected: int b; void pb();\n"
            "private: int c; void pc();\n"
            "};\n"
        )).files
        for name, content in files.items():
            code = content.split("*/", 1)[1]  # past the banner
            for keyword in ("public", "protected", "private"):
                self.assertNotIn(keyword, code, f"{keyword} leaked into {name}")

    def test_reset_scenario(self):
        module = module_of(
            "interface IReset { void reset(); };\n"
            "class Accumulator { public: int value; void reset(); };\n"
        )
        files = emit_module(module).files
        self.assertEqual(sorted(files), ["Accumulator.gen.c", "Accumulator.gen.h", "IReset.h"])
        self.assertIn("void (*reset)(void *self);", files["IReset.h"])
        self.assertEqual(struct_fields(files["Accumulator.gen.h"], "Accumulator"),
                         ["const struct Accumulator__meta_s *meta;", "int value;"])
        self.assertIn("void Accumulator_reset(Accumulator *self);", files["Accumulator.gen.h"])
        self.assertIn("    return;\n", files["Accumulator.gen.c"])

    def test_empty_declarations(self):
        result = emit_module(module_of("interface Nothing { };\nclass Empty { };\n"))
        self.assertIn("typedef struct Nothing_vtable {\n} Nothing_vtable;\n", result.files["Nothing.h"])
        self.assertIn("typedef struct Empty {\n    const struct Empty__meta_s *meta;\n} Empty;\n",
                      result.files["Empty.gen.h"])
        self.assertEqual(result.diagnostics, [])

    def test_static_members(self):
        files = emit_module(module_of(
            "class Pool {\n"
            "    public static int count;\n"
            "    public static Pool *create(int n);\n"
            "    public int size();\n"
            "};\n"
        )).files
        header, source = files["Pool.gen.h"], files["Pool.gen.c"]
        self.assertIn("extern int Pool_count;\n", header)
        self.assertNotIn("count", struct_fields(header, "Pool")[-1])
        self.assertIn("Pool *Pool_create(int n);\n", header)
        self.assertIn("int Pool_size(Pool *self);\n", header)
        self.assertIn("int Pool_count;\n", source)
        self.assertIn("    Pool *result = {0};\n    return result;\n", source)

    def test_static_method_without_params(self):
        header = emit_module(module_of("class S { public static int version(); };")).files["S.gen.h"]
        self.assertIn("int S_version(void);\n", header)

    def test_missing_interface_method_is_null(self):
        sink = DiagnosticSink()
        files = emit_module(module_of(
            "interface IBoth { void a(); void b(); };\n"
            "class Half implements IBoth { public: void a(); };\n"
        ), sink=sink).files
        self.assertIn("    .b = NULL,\n", files["Half.gen.c"])
        self.assertEqual(len(sink.by_category(SHAPE)), 1)

    def test_non_generic_fixtures_verify(self):
        for name in ("mixed_interfaces_classes.cplus.h", "extends_implements.cplus.h",
                     "explicit_self.cplus.h"):
            with self.subTest(fixture=name):
                result = emit_module(module_of_fixture(name), verify=True)
                self.assertEqual([d.format() for d in result.diagnostics], [])

    def test_invalid_c_is_skipped_per_declaration(self):
        """Generic re-emission is not valid C; such a class emits neither file."""
        sink = DiagnosticSink()
        result = emit_module(module_of_fixture("generics_typename_arrays.cplus.h"),
                             verify=True, skip_invalid=True, sink=sink)
        self.assertIn("Vector", result.skipped)
        self.assertNotIn("Vector.gen.h", result.files)
        self.assertNotIn("Vector.gen.c", result.files)
        self.assertIn("Matrix.gen.h", result.files)
        self.assertIn("IVec.h", result.files)
        self.assertTrue(sink.by_category(VERIFICATION))

    def test_verification_is_non_fatal_by_default(self):
        result = emit_module(module_of_fixture("generics_typename_arrays.cplus.h"), verify=True)
        self.assertIn("Vector.gen.h", result.files)
        self.assertEqual(result.skipped, [])
        self.assertTrue(any(d.category == VERIFICATION for d in result.diagnostics))


class TestRenderingHelpers(unittest.TestCase):

    def test_normalize_type(self):
        self.assertEqual(normalize_type("char*"), "char *")
        self.assertEqual(normalize_type("T  **"), "T **")
        self.assertEqual(normalize_type(" const  int "), "const int")

    def test_declare(self):
        self.assertEqual(declare("Foo*", "x"), "Foo *x")
        self.assertEqual(declare("int", "a[3]"), "int a[3]")
        self.assertEqual(declare("int", ""), "int")

    def test_render_params(self):
        self.assertEqual(render_params([]), "void")
        self.assertEqual(render_params([], "C *self"), "C *self")
        params = [Param(type="const char *", name="fmt", declarator="fmt"), Param(type="...")]
        self.assertEqual(render_params(params), "const char *fmt, ...")

    def test_guard_macro(self):
        self.assertEqual(guard_macro("Motor.gen.h"), "MOTOR_GEN_H")
        self.assertEqual(guard_macro("3d.h"), "_3D_H")

    def test_hand_built_module(self):
        module = Module(
            interfaces=[Interface(name="IRun", methods=[Method(return_type="int", name="run")])],
            classes=[Class(name="Job", implemented_interfaces=["IRun"],
                           methods=[Method(return_type="int", name="run")])],
            input_name="hand",
        )
        result = emit_module(module)
        self.assertIn(".run = (int (*)(void *self))Job_run,", result.files["Job.gen.c"])
        self.assertIn("GENERATED FROM: hand", result.files["IRun.h"])


if __name__ == "__main__":
    unittest.main()
