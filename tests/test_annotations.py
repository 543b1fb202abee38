from typemodel.parser.annotations import (
    AnnotationDirective,
    AnnotationScopes,
    classify,
    documentation_text,
    parse_arguments,
    parse_line,
    parse_value,
)


def test_bare_keys_are_true_and_values_are_typed():
    parsed = parse_line('skipEquality, name = "Point", limit = 3, ratio = 0.5, enabled = false')
    assert parsed == {
        "skipEquality": True,
        "name": "Point",
        "limit": 3,
        "ratio": 0.5,
        "enabled": False,
    }


def test_collections_and_malformed_values():
    assert parse_value("[1, 2, 3]") == [1, 2, 3]
    assert parse_value('["a": 1, "b": [true]]') == {"a": 1, "b": [True]}
    assert parse_value("{kind: view}") == {"kind": "view"}
    assert parse_value("[:]") == {}
    assert parse_value("[1, 2") == "[1, 2"
    assert parse_value("some text") == "some text"


def test_duplicate_keys_keep_last_value():
    assert parse_line("key = 1, key = 2") == {"key": 2}


def test_classify_recognises_directives():
    inline = classify("// sourcery: skip, limit = 2")
    assert inline[0].directive is AnnotationDirective.INLINE
    assert inline[0].annotations == {"skip": True, "limit": 2}

    begin = classify("// sourcery:begin:Models: codable")
    assert begin[0].directive is AnnotationDirective.BEGIN
    assert begin[0].scope == "Models"
    assert begin[0].annotations == {"codable": True}

    end = classify("// sourcery:end")
    assert end[0].directive is AnnotationDirective.END
    assert end[0].scope is None

    file_level = classify("// sourcery:file: generated = false")
    assert file_level[0].directive is AnnotationDirective.FILE

    block = classify("/* sourcery: first\n * sourcery: second = 2 */")
    assert [entry.annotations for entry in block] == [{"first": True}, {"second": 2}]


def test_inline_code_markers_and_plain_comments_are_ignored():
    assert classify("// sourcery:inline:Foo.Equatable") == []
    assert classify("// just a comment") == []


def test_nested_block_regions_inner_wins():
    comments = [
        (0, "// sourcery:begin: key = 1, outer"),
        (50, "// sourcery:begin:Inner: key = 2"),
        (100, "// sourcery:end:Inner"),
        (150, "// sourcery:end"),
    ]
    scopes = AnnotationScopes.from_comments(comments)
    assert scopes.at(25) == {"key": 1, "outer": True}
    assert scopes.at(75) == {"key": 2, "outer": True}
    assert scopes.at(125) == {"key": 1, "outer": True}
    assert scopes.at(200) == {}
    assert scopes.problems == []


def test_unbalanced_regions_are_reported():
    scopes = AnnotationScopes.from_comments(
        [(0, "// sourcery:end:Missing"), (10, "// sourcery:begin: open")]
    )
    messages = [message for _, message in scopes.problems]
    assert any("no matching begin" in message for message in messages)
    assert any("never closed" in message for message in messages)
    # an unclosed region still applies to the rest of the file
    assert scopes.at(500) == {"open": True}


def test_file_annotations_are_collected():
    scopes = AnnotationScopes.from_comments([(0, "// sourcery:file: module = Core")])
    assert scopes.file_annotations == {"module": "Core"}


def test_documentation_skips_annotation_lines():
    text = documentation_text(["/// A point in space.", "/// sourcery: skip", "// not docs"])
    assert text == "A point in space."


def test_parse_arguments_joins_values():
    assert parse_arguments(["env = prod", "verbose, count = 2"]) == {
        "env": "prod",
        "verbose": True,
        "count": 2,
    }
