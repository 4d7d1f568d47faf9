"""
Bouquet Mosaic: Gallery Edition

Run with:
    streamlit run streamlit_app.py
"""

from __future__ import annotations

import asyncio
import io

import streamlit as st
from PIL import Image, ImageDraw

from bouquet_mosaic.assets import AssetLoader
from bouquet_mosaic.compositor import Composition, MosaicCompositor
from bouquet_mosaic.presets import generate_presets
from bouquet_mosaic.render import render_composition

# -- Page config -------------------------------------------------------
st.set_page_config(
    page_title="Bouquet Mosaic",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

_SEED = 20260209
_COUNT = 8

# -- CSS ---------------------------------------------------------------
st.markdown("""
<style>
    .stApp {
        background-color: #faf9f6;
        color: #2a2a2a;
        font-family: 'Inter', 'Helvetica Neue', sans-serif;
    }
    .block-container {
        max-width: 1000px;
        padding-top: 3.5rem;
        padding-bottom: 4rem;
    }
    .gallery-title {
        font-family: 'Cormorant Garamond', 'Georgia', serif;
        font-size: 2.8rem;
        font-weight: 300;
        letter-spacing: 0.06em;
        text-align: center;
        color: #1a1a1a;
        border-bottom: 1px solid #1a1a1a;
        padding-bottom: 0.6rem;
        margin-bottom: 0.5rem;
    }
    .catalogue-detail {
        font-family: 'Inter', sans-serif;
        font-size: 0.75rem;
        letter-spacing: 0.08em;
        text-transform: uppercase;
        text-align: center;
        color: #2a2a2a;
        margin-bottom: 2rem;
    }
    .stButton > button, .stDownloadButton > button {
        border-radius: 0px !important;
        letter-spacing: 0.10em;
        text-transform: uppercase;
        font-size: 0.6rem;
    }
    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
    header {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


# -- Helpers -----------------------------------------------------------

def _add_passepartout(img: Image.Image, border: int = 20) -> Image.Image:
    w, h = img.size
    bg = (250, 249, 246)
    canvas = Image.new("RGB", (w + border * 2, h + border * 2), bg)
    canvas.paste(img, (border, border))
    draw = ImageDraw.Draw(canvas)
    draw.rectangle(
        [border - 1, border - 1, border + w, border + h],
        outline=(224, 222, 216), width=1,
    )
    return canvas


@st.cache_resource(show_spinner=False)
def _build(index: int) -> Composition:
    preset = generate_presets(seed=_SEED, count=_COUNT)[index]
    assets = asyncio.run(
        AssetLoader().load(preset.image_path, preset.sprite_paths, preset.sprite_size),
    )
    return MosaicCompositor().build(preset, assets.source, assets.sprites)


# -- Title -------------------------------------------------------------
st.markdown('<div class="gallery-title">Bouquet Mosaic</div>', unsafe_allow_html=True)

if "preset_index" not in st.session_state:
    st.session_state.preset_index = 0

nav1, nav2 = st.columns(2)
with nav1:
    if st.button("NEXT PRESET", type="primary", use_container_width=True):
        st.session_state.preset_index = (st.session_state.preset_index + 1) % _COUNT
        st.rerun()
with nav2:
    frame = st.number_input("Frame", min_value=0, value=0, step=1)

index = st.session_state.preset_index
with st.spinner("Composing ..."):
    composition = _build(index)

preset = composition.preset
budget = st.slider(
    "Cells", 0, max(1, len(composition)), min(preset.max_cells, len(composition)),
)

artwork = render_composition(composition, frame=int(frame), budget=budget)
st.image(_add_passepartout(artwork, border=28), use_container_width=True)
st.markdown(
    f'<div class="catalogue-detail">'
    f"Preset {index + 1} / {_COUNT} &middot; {composition.width} &times; "
    f"{composition.height} &middot; {preset.flower_count} flowers &middot; "
    f"seed {preset.seed}"
    f"</div>",
    unsafe_allow_html=True,
)

buf = io.BytesIO()
artwork.save(buf, format="PNG")
_, dl_col, _ = st.columns([1, 2, 1])
with dl_col:
    st.download_button(
        "SAVE PNG",
        data=buf.getvalue(),
        file_name=f"dithered-preset-{index + 1}.png",
        mime="image/png",
        use_container_width=True,
    )
