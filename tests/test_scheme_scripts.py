"""
Tests for scheme_scripts.py.

Tests cover:
- decode_xml_entities: table-driven decoding, ampersand last
- extract_pre_build_scripts: document order, scoping to PreActions, fail-open
- load_pre_build_scripts: scheme location and PROJECT_DIR
"""

from pathlib import Path

from conftest import scheme_xml
from xdeploy.models import Project
from xdeploy.scheme_scripts import (
    decode_xml_entities,
    extract_pre_build_scripts,
    load_pre_build_scripts,
    scheme_file_path,
)


class TestDecodeXmlEntities:

    def test_decodes_all_supported_entities(self):
        text = "a&#10;b &quot;q&quot; &apos;s&apos; &lt;tag&gt; x &amp; y"
        assert decode_xml_entities(text) == "a\nb \"q\" 's' <tag> x & y"

    def test_ampersand_decoded_last(self):
        """Decoding &amp; must not create new entities that are decoded again."""
        assert decode_xml_entities("&amp;lt;") == "&lt;"
        assert decode_xml_entities("&amp;quot;") == "&quot;"
        assert decode_xml_entities("&amp;#10;") == "&#10;"

    def test_plain_text_untouched(self):
        assert decode_xml_entities("echo hello") == "echo hello"
        assert decode_xml_entities("") == ""


class TestExtractPreBuildScripts:

    def test_two_scripts_in_document_order(self, write_scheme):
        path = write_scheme(scheme_xml("echo &quot;a&quot;&#10;echo b", "echo c"))

        scripts = extract_pre_build_scripts(path)

        assert scripts == ['echo "a"\necho b', "echo c"]

    def test_missing_file_returns_empty(self, tmp_path):
        assert extract_pre_build_scripts(tmp_path / "Nope.xcscheme") == []

    def test_malformed_xml_returns_empty(self, write_scheme):
        path = write_scheme("<Scheme><PreActions><ExecutionAction>")
        assert extract_pre_build_scripts(path) == []

    def test_empty_file_returns_empty(self, write_scheme):
        path = write_scheme("")
        assert extract_pre_build_scripts(path) == []

    def test_scheme_without_pre_actions(self, write_scheme):
        path = write_scheme('<?xml version="1.0"?><Scheme><BuildAction/></Scheme>')
        assert extract_pre_build_scripts(path) == []

    def test_post_actions_ignored(self, write_scheme):
        content = """<?xml version="1.0" encoding="UTF-8"?>
<Scheme>
   <BuildAction>
      <PostActions>
         <ExecutionAction>
            <ActionContent scriptText = "echo post"/>
         </ExecutionAction>
      </PostActions>
      <PreActions>
         <ExecutionAction>
            <ActionContent scriptText = "echo pre"/>
         </ExecutionAction>
      </PreActions>
   </BuildAction>
</Scheme>
"""
        path = write_scheme(content)
        assert extract_pre_build_scripts(path) == ["echo pre"]

    def test_action_content_outside_execution_action_ignored(self, write_scheme):
        content = """<Scheme>
   <PreActions>
      <ActionContent scriptText = "echo stray"/>
      <ExecutionAction>
         <ActionContent scriptText = "echo kept"/>
      </ExecutionAction>
   </PreActions>
</Scheme>
"""
        path = write_scheme(content)
        assert extract_pre_build_scripts(path) == ["echo kept"]

    def test_scripts_across_actions_keep_document_order(self, write_scheme):
        content = """<Scheme>
   <BuildAction>
      <PreActions>
         <ExecutionAction><ActionContent scriptText = "echo 1"/></ExecutionAction>
      </PreActions>
   </BuildAction>
   <LaunchAction>
      <PreActions>
         <ExecutionAction><ActionContent scriptText = "echo 2"/></ExecutionAction>
         <ExecutionAction><ActionContent scriptText = "echo 3"/></ExecutionAction>
      </PreActions>
   </LaunchAction>
</Scheme>
"""
        path = write_scheme(content)
        assert extract_pre_build_scripts(path) == ["echo 1", "echo 2", "echo 3"]

    def test_multiline_build_number_script(self, write_scheme):
        escaped = (
            "cd &quot;${PROJECT_DIR}&quot;&#10;"
            "agvtool next-version -all &gt; /dev/null 2&gt;&amp;1&#10;"
        )
        path = write_scheme(scheme_xml(escaped))

        scripts = extract_pre_build_scripts(path)

        assert scripts == ['cd "${PROJECT_DIR}"\nagvtool next-version -all > /dev/null 2>&1\n']


class TestLoadPreBuildScripts:

    def test_locates_shared_scheme(self, xcodeproj, write_scheme):
        write_scheme(scheme_xml("echo hi"), scheme="App")
        project = Project(name="App", project_path=str(xcodeproj), scheme="App", bundle_id="com.example.app")

        pre_build = load_pre_build_scripts(project)

        assert pre_build.scripts == ["echo hi"]
        assert pre_build.project_dir == str(xcodeproj.parent)
        assert bool(pre_build)
        assert len(pre_build) == 1

    def test_missing_scheme_is_not_an_error(self, xcodeproj):
        project = Project(name="App", project_path=str(xcodeproj), scheme="Other", bundle_id="com.example.app")

        pre_build = load_pre_build_scripts(project)

        assert pre_build.scripts == []
        assert not pre_build

    def test_scheme_file_path_expands_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        project = Project(name="App", project_path="~/Dev/App/App.xcodeproj", scheme="App", bundle_id="x")

        path = scheme_file_path(project)

        assert path == tmp_path / "Dev" / "App" / "App.xcodeproj" / "xcshareddata" / "xcschemes" / "App.xcscheme"
        assert isinstance(path, Path)
