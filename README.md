# pix

`pix` is a small command-line tool for generating and editing images with the
FAL API. You write a prompt on stdin, name an output file, and `pix` writes the
image there. Give it one or more reference images and it sends them to the
model's edit endpoint.

## Installation

```
pip install .
```

This installs the `pix` command. The test dependencies are available with
`pip install .[test]`.

## Configuration

`pix` looks for `config.yaml` (or `.env`) in the directory holding the `pix`
command, then in `~/.config/pix/`. The `model` field is required:

```yaml
model: fal-ai/flux-2
preview-command: open
api-keys:
  fal:
    command: "pass show fal"   # stdout is used as the key
    file: ~/.fal_key           # or read the key from a file
interactive:
  picker: fzf
  prompt-picker:
    always: false
    filter: ""
  load-prompt:
    path: ~/prompts
  model-picker:
    always: false
    filter: ""
    preselect: ""
```

The FAL key is looked for in this order: the `FAL_KEY` environment variable,
the output of `api-keys.fal.command` (run with `sh -c`), the contents of
`api-keys.fal.file`, and finally a `FAL_KEY=` line in `.env` in the
configuration directory.

Setting the `FAL_BASE_URL` environment variable sends every request, for
generation and for pricing, to that base URL instead of FAL's own hosts.

## Usage

Generate an image from a prompt:

```
echo "a lighthouse at dusk, oil painting" | pix generate lighthouse.png
```

`gen` is an alias for `generate`. Every positional before the last one is a
reference image (at most three; `.jpg`, `.jpeg`, `.png`, `.webp` or `.gif`),
which routes the request to the model's edit endpoint:

```
echo "make it winter" | pix gen photo.jpg winter.png
```

On a terminal, without piped input, `pix` asks for the prompt on one line.

Options for `generate`:

- `--size 16:9` or `--size 1024x1024` — aspect ratio, snapped to the nearest of
  9:16, 1:1, 4:3 and 16:9. Without it the first reference image's shape is
  used, or 1:1.
- `-p`, `--preview` — open the result with `preview-command`, or the platform's
  usual viewer (`open`, `xdg-open`) when none is configured.
- `--pick-model` / `--no-pick-model` — choose a model from FAL's live catalogue
  with the picker (text-to-image models, or image-to-image when reference
  images are given). `model-picker.always` turns this on by default;
  `model-picker.filter` narrows the list by regular expression and
  `model-picker.preselect` moves the first match to the top.
- `--load-prompt` / `--no-load-prompt` — choose a saved `.md` prompt under
  `load-prompt.path`, then type a line to append to it. `prompt-picker.always`
  turns this on by default and `prompt-picker.filter` narrows the list.
- `--dry-run` — print the request that would be sent, with reference images
  shown by name, without calling FAL. It cannot be combined with `--quiet`.

The pickers run only when stdin is a terminal; cancelling one falls back to the
configured model or to reading the prompt from stdin.

If the output file has no extension, the extension of the format FAL returned
is appended. If the extension differs from that format, ImageMagick (`magick`)
is used to convert the image.

Check pricing for a model:

```
pix cost
pix cost xai/grok-imagine-image
pix cost --dry-run
```

Without an argument, a configured `model` containing `/` is used as is;
otherwise it is matched as a regular expression against FAL's image models. If
that does not give exactly one model, the model picker is offered on a terminal
and an error is reported otherwise.

List image models, optionally filtered by a regular expression:

```
pix models
pix models flux
```

Global flags: `-q`/`--quiet` suppresses status output (for `cost` it skips the
lookup altogether), `--version` prints the version, and `-h`/`--help` shows
help for `pix` or, after a subcommand, for that subcommand.

## What pix relies on

The interactive pickers run an external program (`fzf` unless
`interactive.picker` names another), and converting between image formats
needs ImageMagick's `magick` on the PATH. `pix` does not choose or convert
interactively without them.

## Exit status

`0` on success, `1` on runtime errors (configuration, API, file I/O), and `2`
on usage errors such as unknown flags or an invalid `--size`.