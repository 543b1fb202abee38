from typemodel.composer.composer import Composer
from typemodel.models.records import (
    Declaration,
    DeclarationKind,
    DiagnosticKind,
    FileParserResult,
    Member,
    MemberKind,
    SourceLocation,
    TypeName,
)


def _diagnostics(model, kind):
    return [d for d in model.diagnostics if d.kind is kind]


def test_struct_and_extension_merge_into_one_type(compose):
    model = compose(
        {
            "Sources/Point.swift": """
            // sourcery: skipEquality
            struct Point {
                var x: Int
            }
            """,
            "Sources/Point+Y.swift": """
            extension Point {
                var y: Int
            }
            """,
        }
    )
    point = model.type("Point")
    assert [m.name for m in point.members] == ["x", "y"]
    assert point.annotations == {"skipEquality": True}
    assert point.kind is DeclarationKind.STRUCT
    assert not point.is_external
    assert point.files == ("Sources/Point+Y.swift", "Sources/Point.swift")
    assert len(point.extension_locations) == 1
    assert model.diagnostics == ()
    assert [t.name for t in model.types] == ["Point"]


def test_extension_without_base_creates_external_type(compose):
    model = compose({"Ghost.swift": "extension Ghost {\n    var z: Int\n}\n"})
    ghost = model.type("Ghost")
    assert ghost.is_external
    assert ghost.kind is DeclarationKind.EXTENSION
    assert ghost.location is None
    assert [m.name for m in ghost.members] == ["z"]


def test_composition_is_independent_of_input_order(parse_all):
    results = parse_all(
        {
            "A.swift": "protocol Shape {}\nstruct Square: Shape {\n    var side: Double\n}\n",
            "B.swift": "extension Square {\n    func area() -> Double { side * side }\n}\n",
            "C.swift": "// sourcery: tagged\nextension Square: Equatable {}\n",
        }
    )
    forward = Composer().compose(results)
    backward = Composer().compose(list(reversed(results)))
    assert forward.to_dict() == backward.to_dict()


def test_duplicate_member_later_path_wins(compose):
    files = {
        "Sources/Base.swift": "struct Foo {}\n",
        "Sources/B.swift": "extension Foo {\n    func foo() -> Int { 2 }\n}\n",
        "Sources/A.swift": "extension Foo {\n    func foo() -> String { \"1\" }\n}\n",
    }
    model = compose(files)
    reordered = compose(dict(reversed(list(files.items()))))
    for result in (model, reordered):
        foo = result.type("Foo")
        assert len(foo.methods) == 1
        assert foo.methods[0].location.file == "Sources/B.swift"
        assert foo.methods[0].type_name.name == "Int"
        conflicts = _diagnostics(result, DiagnosticKind.MERGE_CONFLICT)
        assert len(conflicts) == 1
        assert conflicts[0].file == "Sources/B.swift"


def test_overloads_by_parameter_type_are_kept(compose):
    model = compose(
        {
            "Temperature.swift": """
            struct Temperature {
                init(celsius: Double) {}
                init(celsius: Int) {}
                func scale(by factor: Int) -> Temperature { self }
            }
            """,
            "Temperature+Scale.swift": """
            extension Temperature {
                func scale(by factor: Double) -> Temperature { self }
            }
            """,
        }
    )
    temperature = model.type("Temperature")
    assert len(temperature.methods) == 4
    assert [[p.type_name.name for p in m.parameters] for m in temperature.initializers] == [["Double"], ["Int"]]
    scales = [m for m in temperature.methods if m.name == "scale"]
    assert sorted(m.parameters[0].type_name.name for m in scales) == ["Double", "Int"]
    assert model.diagnostics == ()


def test_block_annotations_lose_to_direct_ones(compose):
    model = compose(
        {
            "Model.swift": """
            // sourcery:begin: key = 1
            struct Settings {
                // sourcery: key = 2
                var a: Int
                var b: Int
            }
            // sourcery:end
            """
        }
    )
    settings = model.type("Settings")
    assert settings.annotations == {"key": 1}
    assert settings.member("a").annotations == {"key": 2}
    assert settings.member("b").annotations == {"key": 1}


def test_container_annotations_propagate_to_members(compose):
    model = compose(
        {
            "Theme.swift": """
            // sourcery: codable
            enum Theme {
                case light
                // sourcery: codable = false
                case dark
            }

            struct Palette {}

            // sourcery: generated
            extension Palette {
                var primary: String { "blue" }
            }
            """
        }
    )
    theme = model.type("Theme")
    assert theme.member("light").annotations == {"codable": True}
    assert theme.member("dark").annotations == {"codable": False}
    palette = model.type("Palette")
    assert palette.member("primary").annotations == {"generated": True}


def test_extension_annotations_reach_nested_types(compose):
    model = compose(
        {
            "Outer.swift": """
            struct Outer {}

            // sourcery: generated
            extension Outer {
                // sourcery: name = "helper"
                struct Helper {}
            }
            """
        }
    )
    helper = model.type("Outer.Helper")
    assert helper.annotations == {"generated": True, "name": "helper"}
    assert model.type("Outer").annotations == {"generated": True}


def test_direct_annotation_beats_enclosing_extension_from_another_file(compose):
    model = compose(
        {
            "A.swift": """
            // sourcery: k = 1
            extension Outer {
                struct Helper {}
            }
            """,
            "B.swift": """
            // sourcery: k = 2
            extension Outer.Helper {}
            """,
        }
    )
    assert model.type("Outer.Helper").annotations == {"k": 2}
    assert _diagnostics(model, DiagnosticKind.ANNOTATION_CONFLICT) == []


def test_conflicting_type_annotations_keep_earlier_value(compose):
    model = compose(
        {
            "A.swift": "// sourcery: name = \"first\"\nstruct Named {}\n",
            "B.swift": "// sourcery: name = \"second\", extra\nextension Named {}\n",
        }
    )
    named = model.type("Named")
    assert named.annotations == {"name": "first", "extra": True}
    conflicts = _diagnostics(model, DiagnosticKind.ANNOTATION_CONFLICT)
    assert len(conflicts) == 1
    assert conflicts[0].file == "B.swift"


def test_second_base_declaration_is_merged_with_a_diagnostic(compose):
    model = compose(
        {
            "a/Dup.swift": "struct Dup {\n    var a: Int\n}\n",
            "b/Dup.swift": "struct Dup {\n    var b: Int\n}\n",
        }
    )
    dup = model.type("Dup")
    assert [m.name for m in dup.members] == ["a", "b"]
    assert dup.location.file == "a/Dup.swift"
    assert len(_diagnostics(model, DiagnosticKind.MERGE_CONFLICT)) == 1


def test_nested_types_and_innermost_scope_resolution(compose):
    model = compose(
        {
            "Outer.swift": """
            struct Inner {}

            struct Outer {
                struct Inner {
                    var value: Int
                }
                var inner: Inner
                var items: [Inner]
            }

            struct Other {
                var inner: Inner
            }
            """
        }
    )
    outer = model.type("Outer")
    assert [t.qualified_name for t in outer.contained_types] == ["Outer.Inner"]
    assert model.type("Outer.Inner").parent_name == "Outer"
    assert outer.member("inner").type_name.resolved == "Outer.Inner"
    assert outer.member("items").type_name.element.resolved == "Outer.Inner"
    assert model.type("Other").member("inner").type_name.resolved == "Inner"
    assert sorted(t.qualified_name for t in model.types) == ["Inner", "Other", "Outer"]
    assert model.resolve(outer.member("inner").type_name) is model.type("Outer.Inner")


def test_extension_of_nested_type_by_short_name(compose):
    model = compose(
        {
            "Outer.swift": "struct Outer {\n    struct Token {}\n}\n",
            "Token.swift": "extension Token {\n    var raw: String { \"\" }\n}\n",
            "Qualified.swift": "extension Outer.Token {\n    var size: Int { 0 }\n}\n",
        }
    )
    token = model.type("Outer.Token")
    assert sorted(m.name for m in token.members) == ["raw", "size"]
    assert model.type("Token") is None


def test_unknown_names_stay_unresolved(compose):
    model = compose({"View.swift": "struct Screen {\n    var date: Date\n    var title: String?\n}\n"})
    screen = model.type("Screen")
    assert screen.member("date").type_name.resolved is None
    assert screen.member("title").type_name.resolved is None
    assert model.diagnostics == ()


def test_typealiases_are_followed_and_cycle_guarded(compose):
    model = compose(
        {
            "Alias.swift": """
            struct Point {}
            typealias Location = Point
            typealias Ping = Pong
            typealias Pong = Ping

            struct Map {
                var origin: Location
                var broken: Ping
            }
            """
        }
    )
    map_type = model.type("Map")
    assert map_type.member("origin").type_name.resolved == "Point"
    assert map_type.member("broken").type_name.resolved is None
    assert model.typealiases["Location"].aliased.resolved == "Point"


def test_generic_parameters_are_never_resolved(compose):
    model = compose(
        {
            "Box.swift": """
            struct T {}

            struct Box<T> {
                var value: T
                func map<U>(_ transform: (T) -> U) -> Box<U> { fatalError() }
            }
            """
        }
    )
    box = model.type("Box")
    value = box.member("value").type_name
    assert value.is_generic_parameter
    assert value.resolved is None
    method = box.methods[0]
    assert method.type_name.resolved == "Box"
    assert method.type_name.generic_arguments[0].is_generic_parameter


def test_inheritance_linking_and_transitive_closure(compose):
    model = compose(
        {
            "Shapes.swift": """
            protocol Shape {}
            protocol Polygon: Shape {}
            class Base: Polygon {}
            class Square: Base, Equatable {}
            """
        }
    )
    square = model.type("Square")
    assert square.superclass == "Base"
    assert square.inherits == ("Base",)
    assert square.implements == ("Polygon", "Shape")
    assert set(square.based) == {"Base", "Equatable", "Polygon", "Shape"}
    assert square.conforms_to("Shape")
    assert [t.qualified_name for t in model.implementing("Shape")] == ["Base", "Polygon", "Square"]


def test_inheritance_cycles_are_preserved(compose):
    model = compose({"Cycle.swift": "protocol A: B {}\nprotocol B: A {}\n"})
    assert set(model.type("A").based) == {"A", "B"}
    assert set(model.type("B").based) == {"A", "B"}


def test_self_resolves_to_enclosing_type(compose):
    model = compose({"Copy.swift": "protocol Copyable {\n    func copy() -> Self\n}\n"})
    copy = model.type("Copyable").methods[0]
    assert copy.type_name.resolved == "Copyable"


def test_compose_hand_built_results():
    location = SourceLocation(file="Manual.swift", start_byte=0, end_byte=10, line=1)
    member = Member(name="id", kind=MemberKind.VARIABLE, type_name=TypeName(name="User"))
    user = Declaration(name="User", kind=DeclarationKind.CLASS, qualified_name="User", location=location)
    session = Declaration(
        name="Session",
        kind=DeclarationKind.STRUCT,
        qualified_name="Session",
        members=(member,),
        location=SourceLocation(file="Manual.swift", start_byte=20, end_byte=40, line=3),
    )
    result = FileParserResult(path="Manual.swift", declarations=(user, session))
    model = Composer().compose([result])
    assert model.type("Session").member("id").type_name.resolved == "User"
    assert not model.has_parse_errors


def test_model_accessors_by_kind_and_member_role(compose):
    model = compose(
        {
            "Controls.swift": """
            enum Mode {
                case on
                case off
            }

            protocol Toggle {}

            class Switch: Toggle {
                static var shared = Switch()
                var mode: Mode = .on
                var label: String { "switch" }
                init() {}
                subscript(index: Int) -> Mode { mode }
            }

            struct Box<T> {
                var value: T
            }
            """
        }
    )
    assert [t.name for t in model.classes] == ["Switch"]
    assert [t.name for t in model.structs] == ["Box"]
    assert [t.name for t in model.enums] == ["Mode"]
    assert [t.name for t in model.protocols] == ["Toggle"]

    switch = model.type("Switch")
    assert [v.name for v in switch.stored_variables] == ["mode"]
    assert [v.name for v in switch.static_variables] == ["shared"]
    assert len(switch.initializers) == 1
    assert len(switch.subscripts) == 1
    assert not switch.is_generic
    assert [c.name for c in model.type("Mode").cases] == ["on", "off"]
    assert model.type("Box").is_generic
